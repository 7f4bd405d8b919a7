"""Hybrid local/remote context client."""

from .client import HybridContextClient, combine_insights
from .models import ConnectivityReport, HybridContext, LocalContext, RemoteIntelligence

__all__ = [
    "ConnectivityReport",
    "HybridContext",
    "HybridContextClient",
    "LocalContext",
    "RemoteIntelligence",
    "combine_insights",
]
