"""
======================================
评分合成 (Score Composer)
======================================

1. 把各因子的分数相加
2. 四舍五入到一位小数，夹到 [0, 100]
3. 按固定阈值（从高到低、互不重叠）分级，并给出对应建议

classify() 是分级的唯一实现：计算时、查询时、序列化时都调用它，
所以同一个存储分数永远得到同一个等级。
"""

from __future__ import annotations

from dataclasses import dataclass

from .risk_factors import FactorResult, round_one

MIN_SCORE = 0.0
MAX_SCORE = 100.0


class RiskLevel:
    HIGH = "HIGH"
    MEDIUM_HIGH = "MEDIUM-HIGH"
    MEDIUM = "MEDIUM"
    LOW_MEDIUM = "LOW-MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class RiskTier:
    level: str
    threshold: float
    recommendation: str


# 按此顺序逐个比较，第一个满足 score >= threshold 的就是结果
TIERS = (
    RiskTier(
        RiskLevel.HIGH, 70,
        "HIGH RISK DETECTED. Immediate intervention required. "
        "Schedule urgent follow-up appointment, review medication adherence, "
        "conduct comprehensive assessment, and consider additional support services. "
        "Monitor closely and provide intensive case management.",
    ),
    RiskTier(
        RiskLevel.MEDIUM_HIGH, 50,
        "Moderate to high risk detected. Schedule follow-up appointment within 2 weeks, "
        "review medication adherence, provide additional counseling, and consider support services. "
        "Monitor patient closely.",
    ),
    RiskTier(
        RiskLevel.MEDIUM, 40,
        "Moderate risk detected. Schedule follow-up appointment, "
        "review medication adherence, and provide additional counseling if needed. "
        "Monitor patient progress.",
    ),
    RiskTier(
        RiskLevel.LOW_MEDIUM, 20,
        "Low to moderate risk. Continue current treatment plan. "
        "Maintain regular appointments and medication adherence. "
        "Provide routine monitoring and support.",
    ),
    RiskTier(
        RiskLevel.LOW, MIN_SCORE,
        "Low risk. Continue current treatment plan. "
        "Maintain regular appointments and medication adherence. "
        "Continue routine monitoring.",
    ),
)


@dataclass(frozen=True)
class ComposedScore:
    score: float
    tier: RiskTier
    risk_factors: dict
    contributions: dict

    @property
    def risk_level(self) -> str:
        return self.tier.level

    @property
    def recommendation(self) -> str:
        return self.tier.recommendation


def clamp_score(raw) -> float:
    return min(max(round_one(raw), MIN_SCORE), MAX_SCORE)


def classify(score) -> RiskTier:
    if score is None:
        raise ValueError("Cannot classify a missing score")
    for tier in TIERS:
        if score >= tier.threshold:
            return tier
    # 夹紧之后不会走到这里；负数按最低档处理
    return TIERS[-1]


def compose(results: list[FactorResult], base_evidence: dict | None = None) -> ComposedScore:
    evidence = dict(base_evidence or {})
    contributions = {}
    raw = 0
    for result in results:
        raw += result.points
        contributions[result.name] = result.points
        evidence.update(result.evidence)

    score = clamp_score(raw)
    return ComposedScore(
        score=score,
        tier=classify(score),
        risk_factors=evidence,
        contributions=contributions,
    )
