"""Domain services: catalog, scoring, tracking, audit, planning and exports."""
