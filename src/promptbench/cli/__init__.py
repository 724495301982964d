"""promptbench command line interface."""
