"""Domain layer - clock abstraction and boundary DTOs (pure, no I/O)."""
