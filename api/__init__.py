"""HTTP surface: IncidentService and the FastAPI app."""
