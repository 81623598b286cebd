"""Learning filter: confidence, relevance filtering, pacing and insights."""

from dataclasses import replace
from typing import List, Mapping, Optional

from ..config import LearningConfig
from ..models import (
    EffectivenessRecord,
    FeedbackOutcome,
    Finding,
    LearningInsights,
    Rule,
    RuleSet,
    severity_weight,
)
from ..models.learning import NEUTRAL_SCORE
from ..models.rule import SEVERITY_ORDER
from ..utils import get_logger
from .effectiveness import EffectivenessStore

Snapshot = Mapping[str, EffectivenessRecord]

TOP_RULES = 5
HIGH_SCORE = 0.7
LOW_SCORE = 0.3
RECOMMEND_MIN_FOUND = 5


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class LearningFilter:
    """
    Decides which findings are worth surfacing, using learned effectiveness.

    All reads for one call go through a single effectiveness snapshot, so a
    concurrent feedback update never mixes old and new state within one
    filtering pass.
    """

    def __init__(self, effectiveness: EffectivenessStore, config: Optional[LearningConfig] = None):
        self.effectiveness = effectiveness
        self.config = config or LearningConfig()
        self.logger = get_logger()

    def _snapshot(self, snapshot: Optional[Snapshot]) -> Snapshot:
        return snapshot if snapshot is not None else self.effectiveness.snapshot()

    def confidence(self, rule_id: str, snapshot: Optional[Snapshot] = None) -> float:
        """Confidence in [0.1, 0.95]; 0.5 for rules with no history."""
        record = self._snapshot(snapshot).get(rule_id)
        if record is None:
            return NEUTRAL_SCORE
        return record.compute_confidence()

    def effectiveness_score(self, rule_id: str, snapshot: Optional[Snapshot] = None) -> float:
        record = self._snapshot(snapshot).get(rule_id)
        if record is None:
            return NEUTRAL_SCORE
        return record.score

    def relevance(self, finding: Finding, snapshot: Optional[Snapshot] = None) -> float:
        """Effectiveness x confidence x severity weight."""
        snapshot = self._snapshot(snapshot)
        score = self.effectiveness_score(finding.rule_id, snapshot)
        confidence = self.confidence(finding.rule_id, snapshot)
        return score * confidence * severity_weight(finding.severity)

    def filter_by_relevance(
        self,
        findings: List[Finding],
        subject_scope: Optional[str] = None,
    ) -> List[Finding]:
        """
        Drop findings below the learned thresholds and rank the rest.

        Args:
            findings: Raw findings from the rule engine
            subject_scope: Submission the findings belong to (for logging)

        Returns:
            Surviving findings with confidence attached, most relevant first
        """
        snapshot = self.effectiveness.snapshot()
        cfg = self.config

        ranked = []
        dropped = 0
        for finding in findings:
            score = self.effectiveness_score(finding.rule_id, snapshot)
            confidence = self.confidence(finding.rule_id, snapshot)
            relevance = score * confidence * severity_weight(finding.severity)

            if score < cfg.min_effectiveness or confidence < cfg.min_confidence or relevance < cfg.min_relevance:
                dropped += 1
                continue
            ranked.append((relevance, replace(finding, confidence=confidence)))

        # sort() is stable, so equal relevance keeps engine order
        ranked.sort(key=lambda pair: pair[0], reverse=True)

        if dropped:
            scope = f" for {subject_scope}" if subject_scope else ""
            self.logger.info(f"Filtered out {dropped} low-relevance findings{scope}")

        return [finding for _, finding in ranked]

    def adaptive_pacing(self, rule_id: str) -> float:
        """Seconds to wait after posting a finding of this rule."""
        cfg = self.config
        score = self.effectiveness_score(rule_id)
        return _clamp(cfg.base_delay * (1.5 - score), cfg.min_delay, cfg.max_delay)

    async def update_effectiveness(self, rule_id: str, outcome: FeedbackOutcome) -> EffectivenessRecord:
        """Apply one developer feedback outcome to a rule's record."""
        return await self.effectiveness.record_outcome(rule_id, outcome)

    def get_insights(self) -> LearningInsights:
        """Aggregate snapshot over all records and recorded runs."""
        records = list(self.effectiveness.snapshot().values())
        runs = self.effectiveness.runs()

        insights = LearningInsights()
        insights.total_analyzed = len(runs)
        insights.total_issues_found = sum(run.metrics.issues_found for run in runs)
        if runs:
            insights.avg_issues_per_run = insights.total_issues_found / len(runs)

        if records:
            insights.avg_effectiveness = sum(r.score for r in records) / len(records)

        insights.rule_scores = {r.rule_id: r.score for r in sorted(records, key=lambda r: r.rule_id)}

        high = [r for r in records if r.score >= HIGH_SCORE]
        high.sort(key=lambda r: (-r.score, r.rule_id))
        insights.most_effective_rules = [r.rule_id for r in high[:TOP_RULES]]

        low = [r for r in records if r.score < LOW_SCORE]
        low.sort(key=lambda r: (r.score, r.rule_id))
        insights.least_effective_rules = [r.rule_id for r in low[:TOP_RULES]]

        accepted = sum(r.issues_accepted for r in records)
        rejected = sum(r.issues_rejected for r in records)
        if accepted + rejected > 0:
            insights.satisfaction_score = accepted / (accepted + rejected)

        insights.recommendations = self._recommendations(records)
        return insights

    def _recommendations(self, records: List[EffectivenessRecord]) -> List[str]:
        recommendations = []
        for record in sorted(records, key=lambda r: r.rule_id):
            if record.score >= LOW_SCORE or record.issues_found <= RECOMMEND_MIN_FOUND:
                continue
            if record.issues_rejected > record.issues_accepted:
                recommendations.append(
                    f"Consider adjusting rule '{record.rule_id}': high rejection rate "
                    f"(effectiveness {record.score:.0%})"
                )
            elif record.issues_ignored > record.issues_accepted:
                recommendations.append(
                    f"Rule '{record.rule_id}' is frequently ignored: consider improving message clarity"
                )
        return recommendations

    def adapt_rules(self, rule_set: RuleSet) -> RuleSet:
        """
        Build the adaptive variant of a rule set.

        Rules that keep performing badly are disabled; weak ones are demoted
        one severity level. The input RuleSet is left untouched.
        """
        cfg = self.config
        snapshot = self.effectiveness.snapshot()

        adapted: List[Rule] = []
        for rule in rule_set:
            record = snapshot.get(rule.id)
            if record is None:
                adapted.append(rule)
                continue

            if record.score < cfg.disable_below_score and record.issues_found > cfg.disable_min_found:
                self.logger.info(f"Disabling low-performing rule: {rule.id} (effectiveness {record.score:.2f})")
                continue

            if record.score < cfg.demote_below_score and record.issues_found > cfg.demote_min_found:
                demoted = _demote(rule.severity)
                if demoted != rule.severity:
                    self.logger.info(f"Demoting rule {rule.id}: {rule.severity} -> {demoted}")
                    rule = rule.with_severity(demoted)

            adapted.append(rule)

        return RuleSet(adapted, version=rule_set.version, loaded_at=rule_set.loaded_at)


def _demote(severity: str) -> str:
    if severity not in SEVERITY_ORDER:
        return severity
    index = SEVERITY_ORDER.index(severity)
    return SEVERITY_ORDER[min(index + 1, len(SEVERITY_ORDER) - 1)]
