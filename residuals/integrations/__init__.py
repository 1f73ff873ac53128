"""
Integrations package initialization.
Exports the read-only partner directory client.
"""
from .partner_directory import DirectoryPartner, PartnerDirectoryClient, build_name_map

__all__ = [
    "DirectoryPartner",
    "PartnerDirectoryClient",
    "build_name_map",
]
