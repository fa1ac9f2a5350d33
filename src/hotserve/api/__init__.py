"""HTTP application for the development server."""
