import itertools
import logging

import numpy as np

from hpadapt.adaptive.hp.data_structures import (
    AdaptiveParameters,
    CandidateList,
    ErrorRecord,
    ScoredCandidate,
    SelectionResult,
)
from hpadapt.hp_types import (
    CandidateEvaluator,
    Discretization,
    DiscretizationProvider,
    ElementID,
    ErrorNorm,
    Field,
    RefinementCandidate,
    RefinementType,
)
from hpadapt.utils.constants import ZERO_TOLERANCE


__all__ = [
    "generate_candidates",
    "identify_qualifying_elements",
    "score_candidate",
    "select_best_candidate",
    "select_refinements",
]

logger = logging.getLogger(__name__)

_P = RefinementType.P_INCREASE
_H = RefinementType.H_SPLIT
_HP = RefinementType.HP_SPLIT
_HP_MIXED = RefinementType.HP_SPLIT_MIXED

# Elements carry a single degree and split along one direction, so the
# anisotropic lists only differ from the isotropic ones by allowing sons
# with different degrees.
_CANDIDATE_FAMILIES: dict[CandidateList, frozenset[RefinementType]] = {
    CandidateList.P_ISO: frozenset({_P}),
    CandidateList.P_ANISO: frozenset({_P}),
    CandidateList.H_ISO: frozenset({_H}),
    CandidateList.H_ANISO: frozenset({_H}),
    CandidateList.HP_ISO: frozenset({_P, _H, _HP}),
    CandidateList.HP_ANISO_H: frozenset({_P, _H, _HP}),
    CandidateList.HP_ANISO_P: frozenset({_P, _H, _HP, _HP_MIXED}),
    CandidateList.HP_ANISO: frozenset({_P, _H, _HP, _HP_MIXED}),
}

_TINY = float(np.finfo(np.float64).tiny)


def identify_qualifying_elements(record: ErrorRecord, threshold: float) -> list[ElementID]:
    """
    Single-element criterion: elements whose error exceeds ``threshold`` times
    the largest element error, in descending error order.
    """
    errors = record.element_errors
    if errors.size == 0:
        return []

    max_error = float(np.max(errors))
    order = np.argsort(-errors, kind="stable")

    if np.isinf(max_error):
        return [record.element_ids[i] for i in order if np.isinf(errors[i])]
    if max_error <= ZERO_TOLERANCE:
        return []

    return [record.element_ids[i] for i in order if errors[i] > threshold * max_error]


def _son_degree_range(degree: int, params: AdaptiveParameters) -> list[int]:
    """Degrees tried for sons of a split element."""
    base_son_degree = max(params.min_polynomial_degree, (degree + 1) // 2)
    return [
        q
        for q in (base_son_degree, base_son_degree + 1)
        if q <= params.max_polynomial_degree
    ]


def generate_candidates(
    degree: int,
    num_sons: int,
    splittable: bool,
    candidate_list: CandidateList,
    params: AdaptiveParameters,
) -> list[RefinementCandidate]:
    """Enumerate the refinement candidates allowed for one element."""
    families = _CANDIDATE_FAMILIES[candidate_list]
    candidates: list[RefinementCandidate] = []

    if _P in families:
        for target in (degree + 1, degree + 2):
            if target <= params.max_polynomial_degree:
                candidates.append(RefinementCandidate(_P, (target,)))

    if not splittable:
        return candidates

    if _H in families:
        candidates.append(RefinementCandidate(_H, (degree,) * num_sons))

    son_degrees = _son_degree_range(degree, params)
    if _HP in families:
        for q in son_degrees:
            if q != degree:
                candidates.append(RefinementCandidate(_HP, (q,) * num_sons))

    if _HP_MIXED in families:
        for combo in itertools.product(son_degrees, repeat=num_sons):
            if len(set(combo)) > 1:
                candidates.append(RefinementCandidate(_HP_MIXED, tuple(combo)))

    return candidates


def score_candidate(
    candidate_error: float,
    candidate_dofs: int,
    base_error: float,
    base_dofs: int,
    conv_exp: float,
) -> float:
    """Error reduction (in decades) per added degree of freedom."""
    if candidate_dofs <= base_dofs or candidate_error >= base_error:
        return 0.0

    reduction = np.log10(max(base_error, _TINY)) - np.log10(max(candidate_error, _TINY))
    return float(reduction / (candidate_dofs - base_dofs) ** conv_exp)


def select_best_candidate(scored: list[ScoredCandidate], base_dofs: int) -> ScoredCandidate | None:
    """Highest score wins, ties go to the cheaper candidate."""
    positive = [cand for cand in scored if cand.score > 0.0]
    if positive:
        return max(positive, key=lambda cand: (cand.score, -cand.dofs))

    # No candidate reduces the error: take the cheapest one that adds DOFs
    growing = [cand for cand in scored if cand.dofs > base_dofs]
    if growing:
        return min(growing, key=lambda cand: (cand.dofs, cand.error))
    return None


def _evaluate_element_candidates(
    element_id: ElementID,
    reference_solution: Field,
    working: Discretization,
    provider: DiscretizationProvider,
    evaluator: CandidateEvaluator,
    params: AdaptiveParameters,
) -> ScoredCandidate | None:
    """Score every allowed candidate of one element and pick the best."""
    degree = provider.element_degree(working, element_id)
    candidates = generate_candidates(
        degree,
        provider.son_count(working, element_id),
        provider.can_split(working, element_id),
        params.candidate_list,
        params,
    )
    if not candidates:
        return None

    norm: ErrorNorm = params.error_norm
    unrefined = RefinementCandidate(RefinementType.NONE, (degree,))
    base_error = evaluator.candidate_projection_error(
        reference_solution, working, element_id, unrefined, norm
    )
    base_dofs = evaluator.candidate_dof_count(unrefined)

    scored = []
    for candidate in candidates:
        error = evaluator.candidate_projection_error(
            reference_solution, working, element_id, candidate, norm
        )
        dofs = evaluator.candidate_dof_count(candidate)
        score = score_candidate(error, dofs, base_error, base_dofs, params.conv_exp)
        scored.append(ScoredCandidate(candidate, error, dofs, score))

    best = select_best_candidate(scored, base_dofs)
    if best is not None:
        logger.debug(
            "Element %d (p=%d, err=%.3e): %s %s, err=%.3e, dofs=%d, score=%.4f",
            element_id,
            degree,
            base_error,
            best.candidate.refinement.value,
            best.candidate.son_degrees,
            best.error,
            best.dofs,
            best.score,
        )
    return best


def select_refinements(
    record: ErrorRecord,
    reference_solution: Field,
    working: Discretization,
    provider: DiscretizationProvider,
    evaluator: CandidateEvaluator,
    params: AdaptiveParameters,
) -> SelectionResult:
    """
    Choose and commit refinements for all qualifying elements.

    All candidates are scored against the unmodified working discretization
    first; the winners are then applied and the DOF map reassigned once.
    """
    qualifying = identify_qualifying_elements(record, params.threshold)
    result = SelectionResult(qualifying_elements=qualifying)

    if not qualifying:
        logger.debug("No element exceeds the refinement threshold")
        return result

    for element_id in qualifying:
        best = _evaluate_element_candidates(
            element_id, reference_solution, working, provider, evaluator, params
        )
        if best is not None:
            result.refined_elements[element_id] = best

    for element_id, scored in result.refined_elements.items():
        provider.apply_refinement(working, element_id, scored.candidate)

    if result.refined_elements:
        provider.assign_dofs(working)

    logger.debug(
        "Selected refinements for %d of %d qualifying elements",
        len(result.refined_elements),
        len(qualifying),
    )
    return result
