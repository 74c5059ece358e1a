"""
Webhook sink for approved purchase orders.

Each approved order is rendered through a Jinja2 template from the config
directory (order_webhook_template.json.j2 by default) and sent to
WEBHOOK_EXPORT_URL.  The template sees:

  job_id        the batch job the order came from
  order         ParsedPurchaseOrder as a dict
  priced_items  list of PricedItem dicts, priced with the current rules

A disabled or unconfigured webhook is treated as a successful no-op, so the
batch can approve orders without a downstream system attached.
"""
import json
import logging
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any, Iterable, Optional

from jinja2 import FileSystemLoader, TemplateNotFound, select_autoescape
from jinja2.sandbox import SandboxedEnvironment

from models.pricing import PricingRule
from models.purchase_order import ParsedPurchaseOrder
from models.result import SyncResult
from .pricing import price_order
from .sink import OrderSink

logger = logging.getLogger(__name__)

USER_AGENT = "Bulk-PO-Engine-Webhook/1.0"
REQUEST_TIMEOUT = 30


class WebhookExportService(OrderSink):
    """Posts a templated JSON payload per approved order."""

    def __init__(
        self,
        config: Any,
        rules: Optional[Iterable[PricingRule]] = None,
        config_dir: Optional[Path] = None,
        category_mapper=None,
    ) -> None:
        self.config = config
        self.rules: list[PricingRule] = list(rules or [])
        self.category_mapper = category_mapper
        self.config_dir = Path(config_dir or config.config_dir)

        # Templates are operator-editable, so render them sandboxed
        self.jinja_env = SandboxedEnvironment(
            loader=FileSystemLoader(str(self.config_dir)),
            autoescape=select_autoescape(["json", "xml"]),
            keep_trailing_newline=True,
        )

    def render_payload(self, job_id: str, order: ParsedPurchaseOrder) -> str:
        """Render the payload for one order.  Raises ValueError if the template is missing."""
        name = self.config.webhook_export_template
        try:
            template = self.jinja_env.get_template(name)
        except TemplateNotFound:
            logger.error("Webhook template %s not found in %s", name, self.config_dir)
            raise ValueError(f"Webhook export template '{name}' not found in {self.config_dir}")

        priced = price_order(order, self.rules, self.category_mapper)
        return template.render(
            job_id=job_id,
            order=order.model_dump(),
            priced_items=[p.model_dump() for p in priced],
        )

    # ------------------------------------------------------------------
    # OrderSink
    # ------------------------------------------------------------------

    def sync(self, job_id: str, order: ParsedPurchaseOrder) -> SyncResult:
        outcome = self.send_webhook_export(job_id, order)
        if outcome["status"] == "failed":
            return SyncResult(ok=False, error=outcome.get("error"))
        return SyncResult(ok=True, reference=str(outcome.get("status_code", outcome["status"])))

    def send_webhook_export(self, job_id: str, order: ParsedPurchaseOrder) -> dict:
        """
        Send one order.  Returns a dict with "status" (success / failed /
        skipped) plus status_code, error or a response excerpt.  Never raises.
        """
        url = self.config.webhook_export_url
        if not (self.config.webhook_export_enabled and url):
            return {"status": "skipped", "reason": "webhook export not enabled"}

        try:
            body = self.render_payload(job_id, order).encode("utf-8")
        except Exception as e:
            logger.error("Could not render webhook payload for %s: %s", job_id, e)
            return {"status": "failed", "error": f"Template rendering failed: {e}"}

        request = urllib.request.Request(
            url, data=body, method=self.config.webhook_export_method.upper(),
        )
        request.add_header("Content-Type", "application/json; charset=utf-8")
        request.add_header("User-Agent", USER_AGENT)
        for key, value in self._custom_headers().items():
            request.add_header(key, str(value))

        try:
            with urllib.request.urlopen(request, timeout=REQUEST_TIMEOUT) as response:
                code = response.getcode()
                excerpt = response.read().decode("utf-8", errors="replace")[:200]
        except urllib.error.HTTPError as e:
            detail = e.read().decode("utf-8", errors="replace") if e.fp else str(e)
            logger.error("Webhook for %s rejected: HTTP %d %s", job_id, e.code, detail[:200])
            return {"status": "failed", "status_code": e.code, "error": detail[:500]}
        except Exception as e:
            logger.error("Webhook for %s failed: %s", job_id, e)
            return {"status": "failed", "error": str(e)}

        logger.info("Webhook sent for %s (PO %s): HTTP %d", job_id, order.po_number, code)
        return {"status": "success", "status_code": code, "response_summary": excerpt}

    def _custom_headers(self) -> dict:
        raw = self.config.webhook_export_headers_json
        if not raw:
            return {}
        try:
            headers = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Ignoring WEBHOOK_EXPORT_HEADERS, not valid JSON: %s", e)
            return {}
        if not isinstance(headers, dict):
            logger.warning("Ignoring WEBHOOK_EXPORT_HEADERS, expected a JSON object")
            return {}
        return headers
