# SPDX-FileCopyrightText: 2025 The KraftKit Authors
# SPDX-License-Identifier: Apache-2.0
print("Unikraft Kconfig tool")
msg = "Please select a tool to run with command:"
print(f"{msg}" f"\n{' '*int(len(msg)/2)}" f"Config Generation Tool. {' '*6} (python -m ukconfgen)")
