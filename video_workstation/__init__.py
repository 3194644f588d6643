"""Local creative-production workstation: gateway server and task core."""
