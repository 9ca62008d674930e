"""Pure domain layer: value objects, DTOs, and workflow definitions. Zero I/O."""
