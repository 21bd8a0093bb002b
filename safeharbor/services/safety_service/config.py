"""Crisis classifier configuration and rule tables.

Each rule is ``(pattern, label, priority)``. Rules are evaluated in ascending
priority, then table order, and the first match decides the label. Patterns
run against normalised text (lowercase, straight apostrophes, single spaces)
so they are written in lowercase with straight quotes.
"""
import os
from dataclasses import dataclass
from typing import FrozenSet, Tuple

Rule = Tuple[str, str, int]

# Severity tiers. Priority 0 = critical, 1 = high, 2 = medium.
# Updated: 2026-02-03 - psychosis language moved to high
SEVERITY_RULES: Tuple[Rule, ...] = (
    # ==========================================================================
    # CRITICAL: explicit lethal intent, plan, method or immediacy
    # ==========================================================================
    (r"\bkill(?:ing)? myself\b", "critical", 0),
    (r"\bend(?:ing)? (?:my life|it all)\b", "critical", 0),
    (r"\b(?:want|wanna|ready) (?:to )?die\b", "critical", 0),
    (r"\bsuicid(?:e|al)\b", "critical", 0),
    (r"\b(?:don't|do not|dont) want to (?:live|be alive|exist|wake up)\b", "critical", 0),
    (r"\bbetter off dead\b", "critical", 0),
    (r"\b(?:plan|planning|going) to (?:kill|end|hang|overdose|jump)\b", "critical", 0),
    (r"\boverdos(?:e|ing)\b", "critical", 0),
    (r"\btoo many pills\b", "critical", 0),
    (r"\b(?:take|took|swallow|swallowed) all (?:of )?(?:my |the |these )?pills\b", "critical", 0),
    (r"\bhang(?:ing)? myself\b", "critical", 0),
    (r"\bjump(?:ing)? off (?:a|the|this) (?:bridge|building|roof)\b", "critical", 0),
    (r"\bbought a (?:gun|rope)\b", "critical", 0),
    (r"\b(?:suicide|goodbye) note\b", "critical", 0),
    (r"\b(?:hurt|harm|cut) myself (?:tonight|right now|today)\b", "critical", 0),

    # ==========================================================================
    # HIGH: self-harm, hopelessness, can't go on, psychosis, disordered eating
    # ==========================================================================
    (r"\b(?:hurt|harm|hurting|harming|cut|cutting|burn|burning) myself\b", "high", 1),
    (r"\bself[- ]?harm(?:ing)?\b", "high", 1),
    (r"\bhopeless\b", "high", 1),
    (r"\b(?:can't|cannot|cant) go on\b", "high", 1),
    (r"\b(?:can't|cannot|cant) (?:do this|take (?:it|this)) anymore\b", "high", 1),
    (r"\bno (?:reason|point) (?:to|in) (?:live|living|going on)\b", "high", 1),
    (r"\bno way out\b", "high", 1),
    (r"\bwish i (?:was|were) dead\b", "high", 1),
    (r"\bwish i (?:wasn't|was not|weren't) (?:alive|here|born)\b", "high", 1),
    (r"\bhear(?:ing)? voices\b", "high", 1),
    (r"\bvoices (?:in my head|tell(?:ing)? me)\b", "high", 1),
    (r"\b(?:starve|starving) myself\b", "high", 1),
    (r"\bmake myself (?:throw up|vomit|sick)\b", "high", 1),
    (r"\bpurg(?:e|ing)\b", "high", 1),
    (r"\b(?:can't|cannot|cant) stop (?:drinking|using)\b", "high", 1),
    (r"\b(?:he|she|they) (?:hits|beats|hurts) me\b", "high", 1),

    # ==========================================================================
    # MEDIUM: acute distress, anxiety and overwhelm
    # ==========================================================================
    (r"\b(?:can't|cannot|cant) cope\b", "medium", 2),
    (r"\bpanic attacks?\b", "medium", 2),
    (r"\bbreaking down\b", "medium", 2),
    (r"\bfalling apart\b", "medium", 2),
    (r"\bfeel(?:ing)? (?:so )?worthless\b", "medium", 2),
    (r"\b(?:completely|totally|too) overwhelmed\b", "medium", 2),
    (r"\bseverely depressed\b", "medium", 2),
    (r"\bdepression is (?:getting worse|unbearable)\b", "medium", 2),
    (r"\b(?:can't|cannot|cant) stop crying\b", "medium", 2),
    (r"\bnobody (?:cares|would care)\b", "medium", 2),
    (r"\b(?:drinking|using|smoking) to cope\b", "medium", 2),
    (r"\bhaven't eaten in (?:days|a week)\b", "medium", 2),
    (r"\bbing(?:e|ed|ing)\b", "medium", 2),
    (r"\brelapsed?\b", "medium", 2),
)

# Crisis type. Suicide is checked first and dominates.
TYPE_RULES: Tuple[Rule, ...] = (
    (r"\bsuicid(?:e|al)\b", "suicide", 0),
    (r"\bkill(?:ing)? myself\b", "suicide", 0),
    (r"\bend(?:ing)? (?:my life|it all)\b", "suicide", 0),
    (r"\b(?:want|wanna|ready) (?:to )?die\b", "suicide", 0),
    (r"\b(?:don't|do not|dont) want to (?:live|be alive|exist|wake up)\b", "suicide", 0),
    (r"\bbetter off dead\b", "suicide", 0),
    (r"\bwish i (?:was|were) dead\b", "suicide", 0),
    (r"\bhang(?:ing)? myself\b", "suicide", 0),
    (r"\bjump(?:ing)? off\b", "suicide", 0),
    (r"\boverdos(?:e|ing)\b", "suicide", 0),
    (r"\b(?:too many|all (?:of )?(?:my |the )?)pills\b", "suicide", 0),
    (r"\bno (?:reason|point) (?:to|in) (?:live|living)\b", "suicide", 0),
    (r"\b(?:suicide|goodbye) note\b", "suicide", 0),

    (r"\b(?:hurt|harm|hurting|harming|cut|cutting|burn|burning) myself\b", "self-harm", 1),
    (r"\bself[- ]?harm(?:ing)?\b", "self-harm", 1),
    (r"\bscars?\b", "self-harm", 1),

    (r"\b(?:starve|starving) myself\b", "eating-disorder", 2),
    (r"\bmake myself (?:throw up|vomit|sick)\b", "eating-disorder", 2),
    (r"\bpurg(?:e|ing)\b", "eating-disorder", 2),
    (r"\bbing(?:e|ed|ing)\b", "eating-disorder", 2),
    (r"\banorexi[ac]\b", "eating-disorder", 2),
    (r"\bbulimi[ac]\b", "eating-disorder", 2),
    (r"\bhaven't eaten\b", "eating-disorder", 2),
    (r"\bcalories\b", "eating-disorder", 2),

    (r"\b(?:drinking|drunk|alcohol|alcoholic)\b", "substance-use", 3),
    (r"\b(?:drugs?|cocaine|heroin|meth|opioids?|fentanyl)\b", "substance-use", 3),
    (r"\brelapsed?\b", "substance-use", 3),
    (r"\b(?:can't|cannot|cant) stop using\b", "substance-use", 3),
)

# Any of these in the text makes the fail-safe answer high instead of low.
HARM_TOKENS: FrozenSet[str] = frozenset({"kill", "harm", "hurt", "die", "dead"})


@dataclass(frozen=True)
class ClassifierConfig:
    """Configuration for crisis classification."""

    # Version tracking for audit trail
    pattern_version: str = "2026.02.03"

    # Log matched rule labels (never raw text)
    log_matches: bool = True

    @classmethod
    def from_env(cls) -> "ClassifierConfig":
        """Create config from environment variables.

        Environment variables:
            SAFEHARBOR_PATTERN_VERSION: Override the pattern version tag
            SAFEHARBOR_LOG_CLASSIFIER_MATCHES: "false" to silence match logs
        """
        return cls(
            pattern_version=os.getenv("SAFEHARBOR_PATTERN_VERSION", cls.pattern_version),
            log_matches=os.getenv("SAFEHARBOR_LOG_CLASSIFIER_MATCHES", "true").lower() != "false",
        )
