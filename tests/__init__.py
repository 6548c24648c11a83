"""Test suites for SmartPark."""
