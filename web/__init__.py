"""HTTP surface for the alert subsystem."""
