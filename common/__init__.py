"""Configuration and HTTP plumbing shared by the LCA backend services."""
