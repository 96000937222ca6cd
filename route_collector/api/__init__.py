"""HTTP control surface for collection sessions."""
