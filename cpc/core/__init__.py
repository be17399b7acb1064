"""
CPC Core

Execution, error, retry, timeout and recovery engines shared by all commands.
"""
