"""Pipeline services: signature checks, feedback persistence, processing."""
