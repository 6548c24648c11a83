"""Unit tests: domain objects, strategies, engines and gateways in isolation."""
