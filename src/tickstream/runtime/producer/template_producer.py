"""
Template producer.

Picks one of three stored HTML fragments uniformly at random on every call.
All variants share the same placeholder element ids (``func-name`` and
``member-name``) so ``update`` events can target whichever one is showing.
"""

from __future__ import annotations

import random

from ..frames import EventPayload
from .base import Producer, ProducerKind

FUNC_NAME_ID = "func-name"
MEMBER_NAME_ID = "member-name"

_PANEL_PLAIN = """\
<i>Function Name Placeholder</i>
<h1>Please wait...</h1>
<p>The tables are being rebuilt.</p>
<p>Generating function: <b><span id="func-name">First Function Value</span></b></p>
<p>Depending on the options you have chosen, this process may take some time.</p>
<p>Currently processing member: <b><span id="member-name">First Member Value</span></b></p>
"""

_PANEL_STAY = """\
<i>Function Name Placeholder</i>
<h1>Please wait ...</h1>
<p>The tables really <i>are</i> being rebuilt. Do not navigate away from this page.</p>
<p>Generating function: <b><span id="func-name">First Function Value</span></b></p>
<p>Depending on the options you have chosen, this process may take some time.</p>
<p>Currently processing member: <b><span id="member-name">First Member Value</span></b></p>
"""

_PANEL_TRUST = """\
<i>Function Name Placeholder</i>
<h1>Please wait  ...</h1>
<p>The tables <i>really</i> are being rebuilt. Trust us.</p>
<p>Generating function: <b><span id="func-name">First Function Value</span></b></p>
<p>Depending on the options you have chosen, this process may take some time.</p>
<p>Currently processing member: <b><span id="member-name">First Member Value</span></b></p>
"""

TEMPLATE_VARIANTS: tuple[tuple[str, ...], ...] = tuple(
    tuple(fragment.splitlines()) for fragment in (_PANEL_PLAIN, _PANEL_STAY, _PANEL_TRUST)
)
PLACEHOLDER_IDS = (FUNC_NAME_ID, MEMBER_NAME_ID)


class TemplateProducer(Producer):
    """Emits one full template variant per call; no shuffle-bag, plain uniform choice."""

    kind = ProducerKind.TEMPLATE

    def __init__(self, rng: random.Random | None = None) -> None:
        super().__init__()
        self._rng = rng or random.Random()
        self.current_variant: int | None = None

    def _generate(self) -> EventPayload:
        index = self._rng.randrange(len(TEMPLATE_VARIANTS))
        self.current_variant = index
        return EventPayload(self.event_type, TEMPLATE_VARIANTS[index])
