# Fichier: kyc_service/processor/liveness.py
"""
Moteur de vivacité du selfie : front -> left -> right -> blink.

Chaque étape reçoit une série d'échantillons (détection de visage + instant
de capture en ms). Les gardes :
  • front : visage de face et image de qualité suffisante ;
  • left / right : tête tournée, tenue pendant une durée minimale ;
  • blink : yeux fermés sur plusieurs échantillons consécutifs, un nombre
    minimal de fois.
L'ordre des étapes et la persistance sont gérés par crud.py.
"""
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from config import settings
from kyc_service.enums import SelfieStep
from kyc_service.processor.vision_client import FaceAttributes, FaceDetection


class FrameSample(BaseModel):
    detection: FaceDetection
    captured_at_ms: int = 0


class StepEvaluation(BaseModel):
    passed: bool
    message: str
    metadata: Dict[str, Any] = {}


STEP_HINTS = {
    SelfieStep.FRONT: "Please look straight at the camera in good lighting.",
    SelfieStep.LEFT: "Please turn your head slightly to the left and hold still.",
    SelfieStep.RIGHT: "Please turn your head slightly to the right and hold still.",
    SelfieStep.BLINK: "Please blink slowly at least twice.",
}


# ───────────────────────────────────────────────
# 1) Gardes élémentaires
# ───────────────────────────────────────────────
def _attributes(sample: FrameSample) -> Optional[FaceAttributes]:
    if not sample.detection.found:
        return None
    return sample.detection.attributes


def _is_level(attrs: FaceAttributes) -> bool:
    pose = attrs.pose
    return abs(pose.pitch) < settings.FRONTAL_MAX_ANGLE and abs(pose.roll) < settings.FRONTAL_MAX_ANGLE


def is_frontal(attrs: Optional[FaceAttributes]) -> bool:
    if attrs is None or attrs.pose is None or attrs.quality is None:
        return False
    return (
        abs(attrs.pose.yaw) < settings.FRONTAL_MAX_ANGLE
        and _is_level(attrs)
        and attrs.quality.brightness > settings.MIN_BRIGHTNESS
        and attrs.quality.sharpness > settings.MIN_SHARPNESS
    )


def is_turned(attrs: Optional[FaceAttributes], step: SelfieStep) -> bool:
    if attrs is None or attrs.pose is None:
        return False
    yaw = attrs.pose.yaw
    if step == SelfieStep.LEFT:
        in_range = settings.TURN_MIN_YAW < yaw < settings.TURN_MAX_YAW
    else:
        in_range = -settings.TURN_MAX_YAW < yaw < -settings.TURN_MIN_YAW
    return in_range and _is_level(attrs)


def is_eyes_closed(attrs: Optional[FaceAttributes]) -> bool:
    if attrs is None or attrs.eyes_open is None:
        return False
    return not attrs.eyes_open.is_open and attrs.eyes_open.confidence > settings.BLINK_MIN_CONFIDENCE


def face_position_label(attrs: Optional[FaceAttributes]) -> str:
    if attrs is None or attrs.pose is None:
        return "unknown"
    yaw = attrs.pose.yaw
    if abs(yaw) < settings.FRONTAL_MAX_ANGLE:
        return "center"
    return "left" if yaw > 0 else "right"


# ───────────────────────────────────────────────
# 2) Tenue de pose et comptage des clignements
# ───────────────────────────────────────────────
def longest_held_run(samples: List[FrameSample], step: SelfieStep) -> List[FrameSample]:
    best: List[FrameSample] = []
    current: List[FrameSample] = []
    for sample in samples:
        if is_turned(_attributes(sample), step):
            current.append(sample)
            if _span_ms(current) > _span_ms(best) or (len(current) > len(best) and _span_ms(current) == _span_ms(best)):
                best = list(current)
        else:
            current = []
    return best


def _span_ms(run: List[FrameSample]) -> int:
    if len(run) < 2:
        return 0
    return run[-1].captured_at_ms - run[0].captured_at_ms


def count_blinks(samples: List[FrameSample]) -> int:
    blinks = 0
    closed_run = 0
    last_blink_at: Optional[int] = None
    for sample in samples:
        if not is_eyes_closed(_attributes(sample)):
            closed_run = 0
            continue
        closed_run += 1
        if closed_run != settings.BLINK_CONSECUTIVE_FRAMES:
            continue
        if last_blink_at is not None and sample.captured_at_ms - last_blink_at < settings.BLINK_MIN_INTERVAL_MS:
            continue
        blinks += 1
        last_blink_at = sample.captured_at_ms
    return blinks


def _metadata(sample: Optional[FrameSample]) -> Dict[str, Any]:
    attrs = _attributes(sample) if sample else None
    return {
        "brightness": attrs.quality.brightness if attrs and attrs.quality else None,
        "facePosition": face_position_label(attrs),
        "confidence": attrs.confidence if attrs else None,
    }


# ───────────────────────────────────────────────
# 3) Évaluation d'une étape
# ───────────────────────────────────────────────
def evaluate_step(step: SelfieStep, samples: List[FrameSample]) -> StepEvaluation:
    samples = sorted(samples, key=lambda s: s.captured_at_ms)
    if not samples or all(not s.detection.found for s in samples):
        return StepEvaluation(passed=False, message=f"No face detected. {STEP_HINTS[step]}", metadata=_metadata(None))

    if step == SelfieStep.FRONT:
        passing = [s for s in samples if is_frontal(_attributes(s))]
        if not passing:
            return StepEvaluation(passed=False, message=STEP_HINTS[step], metadata=_metadata(samples[-1]))
        best = max(passing, key=lambda s: s.detection.attributes.quality.sharpness)
        return StepEvaluation(passed=True, message="Front pose verified", metadata=_metadata(best))

    if step in (SelfieStep.LEFT, SelfieStep.RIGHT):
        run = longest_held_run(samples, step)
        if len(run) < settings.POSE_MIN_FRAMES or _span_ms(run) < settings.POSE_DWELL_MS:
            logging.info(f"Pose '{step.value}' non tenue : {len(run)} échantillon(s), {_span_ms(run)} ms.")
            return StepEvaluation(
                passed=False, message=STEP_HINTS[step], metadata=_metadata(run[-1] if run else samples[-1])
            )
        return StepEvaluation(passed=True, message=f"{step.value.capitalize()} pose verified", metadata=_metadata(run[-1]))

    blinks = count_blinks(samples)
    if blinks < settings.BLINK_MIN_COUNT:
        logging.info(f"Clignements insuffisants : {blinks}/{settings.BLINK_MIN_COUNT}.")
        return StepEvaluation(passed=False, message=STEP_HINTS[step], metadata=_metadata(samples[-1]))
    # Métadonnées prises sur un échantillon yeux ouverts de préférence
    open_samples = [s for s in samples if _attributes(s) and not is_eyes_closed(_attributes(s))]
    reference = open_samples[-1] if open_samples else samples[-1]
    return StepEvaluation(passed=True, message="Blink verified", metadata=_metadata(reference))


def check_capture(step: SelfieStep, detection: FaceDetection) -> StepEvaluation:
    """
    Contrôle l'image conservée comme preuve de l'étape : elle doit montrer,
    à elle seule, la pose demandée (visage ouvert et de face pour 'blink').
    """
    sample = FrameSample(detection=detection)
    attrs = _attributes(sample)
    if attrs is None:
        return StepEvaluation(passed=False, message=f"No face detected. {STEP_HINTS[step]}", metadata=_metadata(None))

    if step in (SelfieStep.LEFT, SelfieStep.RIGHT):
        passed = is_turned(attrs, step)
    else:
        passed = is_frontal(attrs) and (step == SelfieStep.FRONT or not is_eyes_closed(attrs))
    if not passed:
        return StepEvaluation(passed=False, message=STEP_HINTS[step], metadata=_metadata(sample))
    return StepEvaluation(passed=True, message="Capture verified", metadata=_metadata(sample))
