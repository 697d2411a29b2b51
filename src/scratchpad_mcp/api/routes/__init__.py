"""Route modules for the Scratchpad web application."""
