"""CLI surface: argparse router and plain-text rendering."""
