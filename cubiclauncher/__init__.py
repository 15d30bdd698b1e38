"""Main module of the CubicLauncher API.

The API is split between the installation pipeline (resolver, materializer and the
content fetcher they share), the launch configuration builder and the thin 
collaborators used around it (identity provider, mods catalog and process runner).
The `launcher` module ties all of them together.
"""

LAUNCHER_NAME = "cubiclauncher"
LAUNCHER_VERSION = "1.0.0"
LAUNCHER_AUTHORS = ["CubicLauncher contributors"]
LAUNCHER_COPYRIGHT = "CubicLauncher  Copyright (C) 2025  CubicLauncher contributors"
