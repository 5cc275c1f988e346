from __future__ import annotations
import os

# Store path of this tool's own flake source; required for remote runs only.
FLAKECI_SOURCE = os.environ.get("FLAKECI_SOURCE")
DEVOUR_FLAKE = os.environ.get("DEVOUR_FLAKE", "github:srid/devour-flake")
SIDECAR_FILENAME = os.environ.get("FLAKECI_SIDECAR", "om.yaml")

CONFIG_NAMESPACE = "ci"
CONFIG_ROOT_ATTRS = ("om.ci", "nixci")
ROOT_SUBFLAKE = "<root>"

KNOWN_SYSTEMS = ("aarch64-darwin", "aarch64-linux", "x86_64-darwin", "x86_64-linux")
KNOWN_SYSTEM_LISTS = {
    "github:nix-systems/empty": [],
    "github:nix-systems/default-darwin": ["aarch64-darwin", "x86_64-darwin"],
    "github:nix-systems/default-linux": ["aarch64-linux", "x86_64-linux"],
    **{f"github:nix-systems/{s}": [s] for s in KNOWN_SYSTEMS},
}

RESULTS_NAME = "om-ci-results.json"
