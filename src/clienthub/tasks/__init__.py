"""Tasks -- consultant and client action items with a kanban board."""
