"""Version-keyed SQL templates for every statistics domain."""
