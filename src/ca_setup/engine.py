"""
Validation orchestrator.

Runs the three parsers independently, then the key match, chain of trust,
CRL correspondence and leaf path checks, collecting everything into one
ValidationReport. A check is skipped only when something it needs failed
to parse; the parse failure already explains the gap, so a skip adds no
issue of its own.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from .config import Settings
from .errors import IssueKind, ValidationReport
from .parsers import parse_bundle, parse_crl_chain, parse_private_key
from .sources import NotProvided, OptionalSource, Provided, Source, Unreadable
from .validators import (
    check_chain_of_trust,
    check_crl_correspondence,
    check_key_matches_leaf,
    check_leaf_path,
)

LOGGER = logging.getLogger(__name__)

MISSING_CRL_CHAIN_MESSAGE = "No CRL chain given; full CRL chain checking will not be possible"


def _report_unreadable(source: Unreadable, report: ValidationReport) -> None:
    report.add_error(IssueKind.UNREADABLE_SOURCE, f"Could not read {source.path}", source.path)


def validate_setup(
    bundle_source: Source,
    key_source: Source,
    crl_chain_source: OptionalSource = NotProvided(),
    *,
    settings: Optional[Settings] = None,
    at_time: Optional[datetime] = None,
) -> ValidationReport:
    """
    Validate CA material before it is installed.

    Args:
        bundle_source (Provided | Unreadable): Leaf certificate followed by its chain.
        key_source (Provided | Unreadable): The leaf's private key.
        crl_chain_source (Provided | Unreadable | NotProvided): CRLs, leaf CA first.
        settings (Settings | None): Run settings; defaults if None.
        at_time (datetime | None): Validation time. Naive values are taken
            as UTC. Defaults to now.

    Returns:
        ValidationReport: Every error and warning found, in check order.
    """
    settings = settings or Settings()
    if at_time is None:
        at_time = datetime.now(timezone.utc)
    elif at_time.tzinfo is None:    # Naive times are taken as UTC
        at_time = at_time.replace(tzinfo=timezone.utc)
    report = ValidationReport()

    bundle = None
    if isinstance(bundle_source, Provided):
        bundle = parse_bundle(bundle_source, report)
    else:
        _report_unreadable(bundle_source, report)

    key = None
    if isinstance(key_source, Provided):
        key = parse_private_key(key_source, report)
    else:
        _report_unreadable(key_source, report)

    crl_chain = None
    if isinstance(crl_chain_source, Provided):
        crl_chain = parse_crl_chain(crl_chain_source, report)
    elif isinstance(crl_chain_source, Unreadable):
        _report_unreadable(crl_chain_source, report)
    else:
        report.add_warning(IssueKind.MISSING_CRL_CHAIN, MISSING_CRL_CHAIN_MESSAGE)

    if bundle is None:
        LOGGER.debug("No certificates parsed; skipping key match, chain and path checks")
        return report

    if key is not None:
        check_key_matches_leaf(key, bundle, report, key_source.path)
    else:
        LOGGER.debug("No private key parsed; skipping key match")

    if not check_chain_of_trust(bundle, report):
        LOGGER.info("Chain of trust in %s is broken", bundle.path)

    if crl_chain is not None:
        check_crl_correspondence(bundle, crl_chain, report, at_time)
    else:
        LOGGER.debug("No CRLs parsed; skipping CRL correspondence")

    check_leaf_path(bundle, crl_chain, report, at_time, crl_check_all=settings.crl_check_all)

    LOGGER.info("Validation finished with %d error(s) and %d warning(s)",
                len(report.errors), len(report.warnings))
    return report
