"""Service layer: lifecycle orchestration and external collaborators."""
