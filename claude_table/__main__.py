"""Allow running as `python -m claude_table`."""

from claude_table.cli import main_entry

if __name__ == "__main__":
    main_entry()
