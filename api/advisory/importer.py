import logging
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from . import crud, models, nvd, schemas
from .db import SessionLocal

logger = logging.getLogger(__name__)


class InvalidFeedError(ValueError):
    pass


class NvdImporter:
    """Maps NVD JSON 1.0 feed items onto advisories, vendors, products and
    configuration nodes.

    Every call to import_feed opens its own session and commits once at the
    end; any error rolls the whole call back. Vendors and products are looked
    up before they are created, without a unique constraint behind the
    lookup, so two imports running at the same time can both create the same
    vendor. Importing a CVE that is already stored adds a second advisory row.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self.session_factory = session_factory

    def import_feed(self, payload: Optional[schemas.NvdFeed]) -> schemas.ImportSummary:
        if payload is None:
            raise InvalidFeedError("payload is required")
        if not payload.items:
            raise InvalidFeedError("payload has no CVE items")

        summary = schemas.ImportSummary()
        db = self.session_factory()
        try:
            for item in payload.items:
                advisory = self.import_item(db, item)
                if advisory is None:
                    summary.skipped += 1
                    continue
                summary.processed += 1
                summary.advisory_ids.append(advisory.id)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        return summary

    def import_item(self, db: Session, item: schemas.CveItem) -> Optional[models.Advisory]:
        cve = item.cve
        if cve is None or cve.cve_data_meta is None or not cve.cve_data_meta.id:
            logger.warning("invalid metadata")
            return None

        advisory = models.Advisory(cve_id=cve.cve_data_meta.id)
        logger.info("Processing %s", advisory.cve_id)

        advisory.problem_type = nvd.problem_type_summary(cve)
        advisory.published_date = nvd.parse_nvd_date(item.published_date)
        advisory.last_modified_date = nvd.parse_nvd_date(item.last_modified_date)
        advisory.description = nvd.english_description(cve)
        advisory.severity = nvd.v2_severity(item)
        advisory.products = crud.resolve_products(db, cve)
        advisory = crud.save_advisory(db, advisory)

        if item.configurations is not None and item.configurations.nodes is not None:
            logger.info("Now save configurations for %s", advisory.cve_id)
            self.save_configurations(db, advisory, item.configurations.nodes)
        return advisory

    def save_configurations(
        self, db: Session, advisory: models.Advisory, nodes: list[schemas.Node]
    ) -> int:
        """Store the applicability tree of one advisory, two levels deep.

        Children inherit the operator of their top-level node and anything
        below a child is ignored. Nodes without an operator are skipped with
        their whole subtree.
        """
        created = 0
        for node in nodes:
            if node.operator is None:
                continue
            root = crud.create_config_node(db, advisory, node.operator)
            created += 1
            self._save_cpes(db, root, node.cpe)

            for child in node.children or []:
                if child.operator is None:
                    continue
                # TODO: confirm with the feed producer whether children should keep child.operator
                config_node = crud.create_config_node(db, advisory, node.operator, parent_id=root.id)
                created += 1
                self._save_cpes(db, config_node, child.cpe)

        db.flush()
        return created

    def _save_cpes(
        self, db: Session, config_node: models.ConfigNode, cpes: Optional[list[schemas.NodeCpe]]
    ) -> None:
        for node_cpe in cpes or []:
            crud.create_config_node_cpe(db, config_node, node_cpe)


def import_feed(payload: Optional[schemas.NvdFeed]) -> schemas.ImportSummary:
    return NvdImporter().import_feed(payload)
