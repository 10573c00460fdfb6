"""Record request workflow: status machine, tracking numbers and statistics."""
