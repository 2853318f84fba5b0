"""rg-teardown - Dependency-aware Azure resource group teardown."""

__version__ = "0.4.0"
