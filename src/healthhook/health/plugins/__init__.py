"""Built-in data source plugins."""
