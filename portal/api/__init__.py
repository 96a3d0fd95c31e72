"""HTTP surface: app factory, route table, forms, rendering and error pages."""
