"""
CPC CLI Commands

Each module defines Command classes plus the click wrappers registered in
cpc.main.
"""
