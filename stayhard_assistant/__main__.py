"""
Entry point for running stayhard-assistant as a module.

Usage: python -m stayhard_assistant
"""

from stayhard_assistant.cli import main

if __name__ == "__main__":
    main()
