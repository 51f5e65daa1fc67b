"""Product assistant orchestration: evidence gathering, routing, generation, and memory.

Role:
    Implements the per-message flow for the product assistant. It owns the
    PipelineContext contract and every step-level decision used by the ADK runner.

Pipeline data contract (core fields passed across steps):
    - action / problem_reported / model_code: structured-input and problem-flow routing.
    - snapshot / matched_products / knowledge_hits / sale_products: gathered evidence.
    - previous_product / previous_products: session focus as it was before this message.
    - reference / resolved_product / resolved_products: pronoun resolution results.
    - bundle: the ContextBundle serialized into the oracle prompt.
    - answer_text / route / options / show_options / done: response being composed.

Step contracts:
    Action Selection:
        "action:<x>" renders a troubleshooting guide and finishes the turn without the oracle.
    Problem Report:
        Stores the model code, enters AWAITING_PROBLEM_DETAIL, attaches problem options.
    Gather Evidence:
        Snapshot, knowledge search, and catalog search run concurrently under timeouts.
    Pronoun Resolution:
        "it/this" and "these/them" pick up the previous focus when nothing else matched.
    Build Context:
        Assembles the ContextBundle.
    Offer Shortcut:
        Offer and category-overview questions get deterministic templated answers.
    Generation:
        Oracle call under a hard timeout; any non-ok outcome uses the fallback responder.
    Finalize:
        Linkifies the answer and appends both turns to the session history.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .adk_runtime import AdkAgent, AdkStep
from .catalog.fetcher import WEAK_MATCH_SCORE, match_score
from .catalog.models import CatalogSnapshot, Product, merge_products
from .config import Settings
from .context_bundle import MAX_CONTEXT_PRODUCTS, ContextBundle, serialize_context
from .fallback import build_fallback_response, render_category_overview, render_offer_answer
from .intents import (
    QueryIntent,
    detect_intent,
    is_category_overview,
    is_offer_query,
    is_problem_report,
    mentions_black_friday,
    parse_action,
    reference_kind,
)
from .knowledge.knowledge_store import KnowledgeStore, fill_missing_names
from .knowledge.troubleshooting import (
    SupportContact,
    infer_product_type,
    normalize_identifier,
    problem_options,
    resolve_guide,
)
from .linkifier import linkify
from .models import ChatOption, ChatResponse
from .prompt_loader import load_prompt, render_prompt
from .session_store import FLOW_AWAITING_PROBLEM_DETAIL, FLOW_IDLE, ConversationContext, SessionStore
from .utils import first_product_code

logger = logging.getLogger("assistant.agent")

SYSTEM_PROMPT_FILE = "system_prompt.txt"
KNOWLEDGE_LIMIT = 8
DETAIL_BACKFILL_LIMIT = 3

OUTCOME_OK = "ok"
OUTCOME_TIMEOUT = "timeout"
OUTCOME_ERROR = "error"
OUTCOME_EMPTY = "empty"
OUTCOME_UNCONFIGURED = "unconfigured"


class Oracle(Protocol):
    async def generate_reply(self, system_instruction: str, history: Sequence[Dict[str, str]], message: str) -> str:
        ...


class Catalog(Protocol):
    async def get_comprehensive_data(self) -> CatalogSnapshot:
        ...

    async def search_products(self, query: str) -> List[Product]:
        ...

    async def fetch_product_details(self, url: str) -> Optional[Product]:
        ...


@dataclass(frozen=True)
class GenerationOutcome:
    """Result of one oracle call, classified instead of raised."""
    status: str
    text: str = ""
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == OUTCOME_OK


@dataclass
class PipelineContext:
    """Mutable context passed through each pipeline step."""
    session_id: str
    user_message: str
    session: ConversationContext
    intent: QueryIntent
    action: Optional[str] = None
    problem_reported: bool = False
    model_code: Optional[str] = None
    snapshot: CatalogSnapshot = field(default_factory=CatalogSnapshot)
    matched_products: List[Product] = field(default_factory=list)
    knowledge_hits: List[Dict[str, Any]] = field(default_factory=list)
    sale_products: List[Product] = field(default_factory=list)
    previous_product: Optional[Product] = None
    previous_products: List[Product] = field(default_factory=list)
    reference: Optional[str] = None
    resolved_product: Optional[Product] = None
    resolved_products: List[Product] = field(default_factory=list)
    bundle: Optional[ContextBundle] = None
    outcome: Optional[GenerationOutcome] = None
    answer_text: str = ""
    response_html: str = ""
    route: str = ""
    options: List[ChatOption] = field(default_factory=list)
    show_options: bool = False
    done: bool = False
    thinking_logs: List[Dict[str, str]] = field(default_factory=list)

    def log(self, event: str, detail: str, status: str = "success") -> None:
        """Append a structured step log entry for debugging."""
        self.thinking_logs.append({"event": event, "detail": detail, "status": status})


class AssistantAgent:
    def __init__(
        self,
        oracle: Optional[Oracle],
        catalog: Catalog,
        knowledge: KnowledgeStore,
        sessions: SessionStore,
        settings: Settings,
        prompts_dir: Optional[Path] = None,
    ) -> None:
        """Purpose: Initialize the orchestrator and its ordered step pipeline.
        Inputs/Outputs: Inputs are the oracle (None when unconfigured), catalog fetcher,
            knowledge store, session store, settings and prompt directory; no return value.
        Side Effects / State: Constructs an AdkAgent with ordered steps.
        Dependencies: Uses AdkAgent/AdkStep and step methods on this class.
        Failure Modes: None at init; runtime errors are converted in handle_message.
        If Removed: The chat endpoint has nothing to call.
        Testing Notes: Instantiate with fakes and verify the registered step order.
        """
        # Store collaborators and build the step runner.
        self._oracle = oracle
        self._catalog = catalog
        self._knowledge = knowledge
        self._sessions = sessions
        self._settings = settings
        self._prompts_dir = prompts_dir or settings.prompts_dir
        self._support = SupportContact(
            email=settings.support_email,
            phone=settings.support_phone,
            website=settings.site_base_url,
        )
        self._agent = AdkAgent(
            steps=[
                AdkStep("action_selection", self._step_action_selection, skip_if=lambda c: not c.action),
                AdkStep("problem_report", self._step_problem_report, skip_if=lambda c: c.done or not c.problem_reported),
                AdkStep("gather_evidence", self._step_gather_evidence, skip_if=lambda c: c.done),
                AdkStep("pronoun_resolution", self._step_pronoun_resolution, skip_if=lambda c: c.done or not c.reference),
                AdkStep("build_context", self._step_build_context, skip_if=lambda c: c.done),
                AdkStep("offer_shortcut", self._step_offer_shortcut, skip_if=lambda c: c.done or c.problem_reported),
                AdkStep("generation", self._step_generation, skip_if=lambda c: c.done),
                AdkStep("finalize", self._step_finalize, always_run=True),
            ]
        )

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    async def aclose(self) -> None:
        close = getattr(self._catalog, "aclose", None)
        if close is not None:
            await close()

    @property
    def support_message(self) -> str:
        return (
            "Sorry, I encountered an error. Please try again later or contact support at "
            f"{self._settings.support_email}"
        )

    async def handle_message(self, message: str, session_id: Optional[str] = None) -> ChatResponse:
        """Purpose: Run the full pipeline for one user message.
        Inputs/Outputs: Inputs are the message and optional session id; output is a
            ChatResponse with HTML-safe text and optional problem options.
        Side Effects / State: Reads/updates session focus, flow state, and history.
        Dependencies: Uses AdkAgent.run and every step method.
        Failure Modes: Any exception becomes the support-contact message; never raises.
        If Removed: The assistant cannot answer.
        Testing Notes: Make a step raise and check the polite support message is returned.
        """
        # Build the context, run the steps, and convert any failure into a safe reply.
        session_key = session_id or self._settings.default_session_id or uuid.uuid4().hex
        try:
            session = self._sessions.get(session_key)
            context = PipelineContext(
                session_id=session_key,
                user_message=message,
                session=session,
                intent=detect_intent(message),
                action=parse_action(message),
                problem_reported=is_problem_report(message),
                previous_product=session.last_product,
                previous_products=list(session.last_products),
                reference=reference_kind(message),
            )
            logger.info(
                "session=%s intent=%s action=%s problem=%s reference=%s",
                session_key,
                context.intent.intent,
                context.action,
                context.problem_reported,
                context.reference,
            )
            await self._agent.run(context)
        except Exception:
            logger.exception("session=%s step=pipeline route=error", session_key)
            return ChatResponse(response=linkify(self.support_message))

        response = ChatResponse(response=context.response_html)
        if context.show_options and context.options:
            response.options = context.options
            response.show_options = True
        return response

    async def _step_action_selection(self, context: PipelineContext) -> None:
        """Purpose: Answer an "action:<x>" selection with a troubleshooting guide.
        Inputs/Outputs: Input is PipelineContext; sets answer_text and done.
        Side Effects / State: Records the selected problem and returns the flow to IDLE.
        Dependencies: Uses resolve_guide and infer_product_type.
        Failure Modes: Unknown identifiers render the "other" guide.
        If Removed: Option buttons shown after a problem report do nothing.
        Testing Notes: "action:troubleshoot_power" must not call the oracle.
        """
        # Pick the guide variant from whatever product the session knows about.
        session = context.session
        hints = [session.product_model_number]
        if session.last_product is not None:
            hints.extend([session.last_product.name, session.last_product.category])
        product_type = infer_product_type(*hints)
        context.answer_text = resolve_guide(
            context.action or "",
            self._support,
            product_type=product_type,
            model_code=session.product_model_number,
        )
        session.selected_problem = normalize_identifier(context.action or "")
        session.flow_state = FLOW_IDLE
        context.route = "action"
        context.done = True
        context.log("Action Selection", f"guide={session.selected_problem} type={product_type}")
        logger.info(
            "session=%s step=action_selection guide=%s product_type=%s",
            context.session_id,
            session.selected_problem,
            product_type,
        )

    async def _step_problem_report(self, context: PipelineContext) -> None:
        # Remember the model code (or its absence) and offer the problem menu.
        code = first_product_code(context.user_message)
        context.model_code = code
        context.session.product_model_number = code
        context.session.flow_state = FLOW_AWAITING_PROBLEM_DETAIL
        context.options = [ChatOption(**option) for option in problem_options()]
        context.show_options = True
        context.log("Problem Report", f"model={code or '-'}")
        logger.info("session=%s step=problem_report model=%s", context.session_id, code)

    async def _step_gather_evidence(self, context: PipelineContext) -> None:
        """Purpose: Collect catalog, search, and knowledge evidence for the message.
        Inputs/Outputs: Input is PipelineContext; sets snapshot/matched_products/
            knowledge_hits/sale_products.
        Side Effects / State: Network I/O through the catalog; updates session focus.
        Dependencies: Uses Catalog, KnowledgeStore, fill_missing_names, merge_products.
        Failure Modes: Timeouts and errors degrade to an empty snapshot or empty lists.
        If Removed: Answers are not grounded in any evidence.
        Testing Notes: A catalog that never returns must still yield an answer.
        """
        # Run the independent reads together; each one degrades on its own.
        settings = self._settings
        snapshot, matched = await asyncio.gather(
            self._bounded(
                self._catalog.get_comprehensive_data(),
                settings.catalog_timeout,
                CatalogSnapshot(),
                "catalog",
                context.session_id,
            ),
            self._bounded(
                self._catalog.search_products(context.user_message),
                settings.search_timeout,
                [],
                "search",
                context.session_id,
            ),
        )
        context.snapshot = snapshot or CatalogSnapshot()
        context.knowledge_hits = self._knowledge.search(context.user_message, limit=KNOWLEDGE_LIMIT)
        matched = list(matched or [])
        if matched and context.reference and (context.previous_product or context.previous_products):
            best = max(match_score(context.user_message, product) for product in matched)
            if best == WEAK_MATCH_SCORE:
                # Description-word hits do not outrank a pronoun pointing at the focus.
                context.log("Gather Evidence", f"weak matches ignored count={len(matched)}")
                logger.info(
                    "session=%s step=gather_evidence weak_matches_ignored=%s reference=%s",
                    context.session_id,
                    len(matched),
                    context.reference,
                )
                matched = []
        context.matched_products = await self._backfill_details(context, matched)

        try:
            context.sale_products = fill_missing_names(context.snapshot.sales, self._knowledge.rows)
        except Exception:
            logger.warning("session=%s sale name backfill failed", context.session_id, exc_info=True)
            context.sale_products = list(context.snapshot.sales)

        if len(context.matched_products) == 1:
            self._sessions.set_focus(context.session_id, context.matched_products[0])
        elif len(context.matched_products) > 1:
            self._sessions.set_focus(context.session_id, context.matched_products[:MAX_CONTEXT_PRODUCTS])

        context.log(
            "Gather Evidence",
            f"products={len(context.snapshot.products)} matched={len(context.matched_products)} "
            f"knowledge={len(context.knowledge_hits)} sales={len(context.sale_products)}",
        )
        logger.info(
            "session=%s step=gather_evidence matched=%s knowledge=%s sales=%s has_sales=%s",
            context.session_id,
            len(context.matched_products),
            len(context.knowledge_hits),
            len(context.sale_products),
            context.snapshot.has_sales,
        )

    async def _step_pronoun_resolution(self, context: PipelineContext) -> None:
        # Only fall back to the previous focus when this message matched nothing itself.
        if context.matched_products:
            return
        if context.reference == "single" and context.previous_product is not None:
            refreshed = await self._backfill_details(context, [context.previous_product])
            context.resolved_product = refreshed[0]
        elif context.reference == "multiple" and context.previous_products:
            context.resolved_products = list(context.previous_products)
        elif context.previous_product is not None:
            context.resolved_product = context.previous_product
        elif context.previous_products:
            context.resolved_products = list(context.previous_products)
        else:
            return
        names = [product.name for product in ([context.resolved_product] if context.resolved_product else context.resolved_products)]
        context.log("Pronoun Resolution", f"reference={context.reference} resolved={names}")
        logger.info(
            "session=%s step=pronoun_resolution reference=%s resolved=%s",
            context.session_id,
            context.reference,
            names,
        )

    async def _step_build_context(self, context: PipelineContext) -> None:
        context.bundle = ContextBundle(
            matched_products=context.matched_products,
            knowledge_hits=context.knowledge_hits,
            snapshot=context.snapshot,
            sale_products=context.sale_products,
            focus_product=context.previous_product,
            focus_products=context.previous_products,
            resolved_product=context.resolved_product,
            resolved_products=context.resolved_products,
            model_code=context.model_code or context.session.product_model_number,
            awaiting_problem_detail=context.problem_reported,
        )

    async def _step_offer_shortcut(self, context: PipelineContext) -> None:
        """Purpose: Answer unambiguous offer and category-overview questions directly.
        Inputs/Outputs: Input is PipelineContext; may set answer_text and done.
        Side Effects / State: None beyond the context.
        Dependencies: Uses render_offer_answer and render_category_overview.
        Failure Modes: None; non-matching messages pass through untouched.
        If Removed: Sale questions rely on free generation over long product lists.
        Testing Notes: With hasSales=true the reply must acknowledge the sale.
        """
        # Offer questions about a specific product still go to generation.
        bundle = context.bundle or ContextBundle()
        if context.matched_products or bundle.referenced_products:
            return
        if is_category_overview(context.user_message):
            context.answer_text = render_category_overview(self._support)
            context.route = "category_overview"
        elif is_offer_query(context.user_message):
            context.answer_text = render_offer_answer(
                bundle,
                self._support,
                black_friday=mentions_black_friday(context.user_message),
            )
            context.route = "offer_shortcut"
        else:
            return
        context.done = True
        context.log("Offer Shortcut", context.route)
        logger.info(
            "session=%s step=offer_shortcut route=%s sales=%s has_sales=%s",
            context.session_id,
            context.route,
            len(context.sale_products),
            context.snapshot.has_sales,
        )

    async def _step_generation(self, context: PipelineContext) -> None:
        """Purpose: Produce the answer with the oracle, or the fallback responder.
        Inputs/Outputs: Input is PipelineContext; sets outcome, answer_text and route.
        Side Effects / State: Network call to the oracle.
        Dependencies: Uses load_prompt, serialize_context, and build_fallback_response.
        Failure Modes: Timeout/error/empty/unconfigured outcomes switch to the fallback.
        If Removed: Free-form questions are never answered.
        Testing Notes: An oracle that sleeps past the timeout must yield a fallback answer.
        """
        # Call the oracle under a hard timeout and classify the outcome.
        bundle = context.bundle or ContextBundle()
        outcome = await self._generate(context, bundle)
        context.outcome = outcome
        if outcome.ok:
            context.answer_text = outcome.text
            context.route = "generation"
        elif context.problem_reported:
            context.answer_text = self._problem_prompt(context)
            context.route = f"problem_prompt:{outcome.status}"
        else:
            context.answer_text = build_fallback_response(context.user_message, bundle, self._support)
            context.route = f"fallback:{outcome.status}"
        context.log("Generation", f"outcome={outcome.status} route={context.route}")
        logger.info(
            "session=%s step=generation outcome=%s route=%s",
            context.session_id,
            outcome.status,
            context.route,
        )

    async def _step_finalize(self, context: PipelineContext) -> None:
        # Render HTML for the client and record both turns.
        answer = context.answer_text.strip() or build_fallback_response(
            context.user_message, context.bundle or ContextBundle(), self._support
        )
        context.response_html = linkify(answer)
        self._sessions.append(context.session_id, "user", context.user_message)
        self._sessions.append(context.session_id, "assistant", answer)
        logger.info("session=%s step=finalize route=%s chars=%s", context.session_id, context.route, len(answer))
        logger.debug("session=%s thinking_logs=%s", context.session_id, context.thinking_logs)

    async def _generate(self, context: PipelineContext, bundle: ContextBundle) -> GenerationOutcome:
        if self._oracle is None:
            return GenerationOutcome(OUTCOME_UNCONFIGURED)

        template = load_prompt(self._prompts_dir / SYSTEM_PROMPT_FILE)
        system_instruction = render_prompt(
            template,
            {
                "BRAND": self._settings.brand_name,
                "SITE_URL": self._settings.site_base_url,
                "SUPPORT_EMAIL": self._settings.support_email,
                "SUPPORT_PHONE": self._settings.support_phone,
            },
        )
        system_instruction = f"{system_instruction.strip()}\n\n{serialize_context(bundle)}"
        history = self._sessions.recent_history(context.session_id, self._settings.history_window)

        try:
            text = await asyncio.wait_for(
                self._oracle.generate_reply(system_instruction, history, context.user_message),
                timeout=self._settings.generation_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "session=%s oracle timeout after=%ss",
                context.session_id,
                self._settings.generation_timeout,
            )
            return GenerationOutcome(OUTCOME_TIMEOUT)
        except Exception as exc:
            logger.warning("session=%s oracle error=%s", context.session_id, exc)
            return GenerationOutcome(OUTCOME_ERROR, detail=str(exc))

        text = (text or "").strip()
        if not text:
            return GenerationOutcome(OUTCOME_EMPTY)
        return GenerationOutcome(OUTCOME_OK, text=text)

    async def _backfill_details(self, context: PipelineContext, products: List[Product]) -> List[Product]:
        # Refresh the top matches that lack a price or specs; never touches snapshot records.
        base_url = self._settings.site_base_url.rstrip("/")
        targets = [
            index
            for index, product in enumerate(products[:DETAIL_BACKFILL_LIMIT])
            if product.url
            and product.url.rstrip("/") != base_url
            and (not product.has_price or not product.specs)
        ]
        if not targets:
            return products

        details = await asyncio.gather(
            *(
                self._bounded(
                    self._catalog.fetch_product_details(products[index].url),
                    self._settings.detail_timeout,
                    None,
                    "detail",
                    context.session_id,
                )
                for index in targets
            )
        )
        enriched = list(products)
        for index, detail in zip(targets, details):
            if detail is not None:
                enriched[index] = merge_products(detail, products[index])
        return enriched

    async def _bounded(self, awaitable: Any, timeout: float, default: Any, label: str, session_id: str) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            logger.info("session=%s %s timeout after=%ss", session_id, label, timeout)
            return default
        except Exception as exc:
            logger.warning("session=%s %s failed error=%s", session_id, label, exc)
            return default

    def _problem_prompt(self, context: PipelineContext) -> str:
        product = f"your {context.model_code}" if context.model_code else "your product"
        lines = [f"I'm sorry to hear {product} isn't working properly."]
        if not context.model_code:
            lines.append("If you can, tell me the model number (you'll find it on the product label).")
        lines.append("Please choose the option below that best describes the problem.")
        return "\n\n".join(lines)
