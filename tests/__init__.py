"""Test suite for the clinic bot."""
