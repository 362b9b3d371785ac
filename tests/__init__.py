"""Test suite for scroll_filaments."""
