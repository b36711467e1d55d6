"""Domain objects shared by the PREP steps."""
