import logging
from typing import List

logger = logging.getLogger(__name__)


class OriginParser:
    def parse_url_list(self, raw_value: str, name: str) -> List[str]:
        items = [v.strip().rstrip("/") for v in (raw_value or "").split(",")]

        origins = [v for v in items if v.startswith(("http://", "https://"))]

        if not origins:
            logger.warning("No valid origins configured in %s", name)

        return origins


parser = OriginParser()
