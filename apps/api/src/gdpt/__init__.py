"""GDPT enrollment and identity lifecycle API."""
