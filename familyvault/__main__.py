#!/usr/bin/env python3
"""
Entry point for running FamilyVault as a module.

Usage:
    python -m familyvault <command> [options]
"""

from .cli import main

if __name__ == "__main__":
    main()
