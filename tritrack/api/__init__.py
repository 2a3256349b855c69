"""Flask HTTP surface for tritrack."""
