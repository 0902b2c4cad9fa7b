"""Entity selection and reference resolution for catalog-backed form fields."""

__version__ = "0.1.0"
