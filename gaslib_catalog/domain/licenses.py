from typing import Optional

# Sentinel stored when a repository has no license or one GitHub does not list.
UNKNOWN_LICENSE = "Unknown"

# License names as returned by the GitHub licenses API.
KNOWN_LICENSES = frozenset({
    "Academic Free License v3.0",
    "Apache License 2.0",
    "Artistic License 2.0",
    "Boost Software License 1.0",
    'BSD 2-Clause "Simplified" License',
    'BSD 3-Clause "New" or "Revised" License',
    "BSD 3-Clause Clear License",
    'BSD 4-Clause "Original" or "Old" License',
    "BSD Zero Clause License",
    "Creative Commons Zero v1.0 Universal",
    "Creative Commons Attribution 4.0",
    "Creative Commons Attribution Share Alike 4.0",
    "Do What The F*ck You Want To Public License",
    "Educational Community License v2.0",
    "Eclipse Public License 1.0",
    "Eclipse Public License 2.0",
    "European Union Public License 1.1",
    "GNU Affero General Public License v3.0",
    "GNU General Public License v2.0",
    "GNU General Public License v3.0",
    "GNU Lesser General Public License v2.1",
    "GNU Lesser General Public License v3.0",
    "ISC License",
    "LaTeX Project Public License v1.3c",
    "Microsoft Public License",
    "MIT License",
    "Mozilla Public License 2.0",
})


def normalize_license_name(name: Optional[str]) -> str:
    """Maps a GitHub license name onto a known name or the unknown sentinel."""
    if not name:
        return UNKNOWN_LICENSE
    name = name.strip()
    return name if name in KNOWN_LICENSES else UNKNOWN_LICENSE
