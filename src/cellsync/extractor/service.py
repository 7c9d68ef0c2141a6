"""Region Extractor service: serves extractRegions/annotate over RPC."""

from __future__ import annotations

import logging

from cellsync.constants import RpcMethod
from cellsync.extractor.annotate import annotate
from cellsync.extractor.regions import extract_regions
from cellsync.rpc.server import RpcServer

logger = logging.getLogger(__name__)


def _extract_regions(source: str, root_name: str) -> list[list[object]]:
    regions = extract_regions(source, root_name)
    logger.debug(
        "event=regions_extracted root=%s count=%d", root_name, len(regions)
    )
    return [[name, start, end] for name, start, end in regions]


def _annotate(source: str, namespace: str) -> str:
    annotated = annotate(source, namespace)
    logger.debug(
        "event=namespace_annotated namespace=%s lines=%d",
        namespace,
        annotated.count("\n"),
    )
    return annotated


def create_extractor_server(host: str, port: int) -> RpcServer:
    """RpcServer answering both extractor methods."""
    return RpcServer(
        {
            RpcMethod.EXTRACT_REGIONS: _extract_regions,
            RpcMethod.ANNOTATE: _annotate,
        },
        host=host,
        port=port,
        name="extractor",
    )
