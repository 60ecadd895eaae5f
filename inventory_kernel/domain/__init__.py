"""Pure domain layer: clock, workflows, lifecycles, identifiers, DTOs."""
