"""Pure domain values: document vocabulary, workflows, DTOs, clock, collaborators."""
