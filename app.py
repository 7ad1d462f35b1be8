"""
Specimen Guide — Flask Application
==================================
Display surface for the bench station: mints labels and keys, records
provenance, runs confirmation prompts across requests and serves diagram
scenes as JSON or SVG.
"""
from __future__ import annotations
import uuid

from flask import Flask, Response, jsonify, request
from typing import Dict

from specimen_guide.aliases import AliasGraph
from specimen_guide.config import EngineConfig
from specimen_guide.diagram import to_scene
from specimen_guide.errors import (
    BrokenChain, DuplicateAlias, MalformedIdentity, SpecimenError,
)
from specimen_guide.identity import (
    SpecimenIdentity, encode_key, encode_label, package_label,
)
from specimen_guide.kits import LIGATION_TUBE_COLORS, RT_PCR_KIT
from specimen_guide.log import configure_logging, get_logger
from specimen_guide.shapes import (
    closed_tube, opened_tube, package_contents, strip_panel, transfer_to_one, tube_strip,
)
from specimen_guide.svg import render_svg
from specimen_guide.validation import (
    ValidationKind, ValidationMachine, ValidationState,
)

CONFIG = EngineConfig.from_env()
configure_logging(CONFIG.log_level, CONFIG.log_json)
logger = get_logger(__name__)

app = Flask(__name__)

# ── In-memory state (single station) ─────────────────────────────────────────
_graph = AliasGraph()
_sessions: Dict[str, ValidationMachine] = {}


def _identity(d: dict) -> SpecimenIdentity:
    return SpecimenIdentity(
        kit=str(d.get("kit", "")),
        unit=str(d.get("unit", "")),
        component=str(d.get("component", "")),
        sample=str(d.get("sample", "")),
    )


def _describe(identity: SpecimenIdentity) -> dict:
    d = identity.to_dict()
    try:
        d["label"] = encode_label(identity)
    except MalformedIdentity:
        d["label"] = None   # raw samples have no unit token
    return d


@app.errorhandler(SpecimenError)
def specimen_error(exc: SpecimenError):
    status = 400
    if isinstance(exc, MalformedIdentity):
        status = 422
    elif isinstance(exc, DuplicateAlias):
        status = 409
    elif isinstance(exc, BrokenChain):
        status = 404
    return jsonify({"error": str(exc), "type": type(exc).__name__}), status


@app.route("/api/config", methods=["GET"])
def get_config():
    return jsonify({"config": CONFIG.to_dict(), "kit": RT_PCR_KIT.to_dict()})


# ── Layer 1: Token codec ─────────────────────────────────────────────────────

@app.route("/api/identity/label", methods=["POST"])
def identity_label():
    identity = _identity(request.json or {})
    return jsonify({"label": encode_label(identity), "package": package_label(identity)})


@app.route("/api/identity/key", methods=["POST"])
def identity_key():
    d = request.json or {}
    suffix = d.get("suffix", "")
    if not suffix:
        return jsonify({"error": "suffix is required"}), 400
    return jsonify({"key": encode_key(_identity(d.get("identity", {})), suffix)})


# ── Layer 2: Alias graph ─────────────────────────────────────────────────────

@app.route("/api/aliases", methods=["GET"])
def list_aliases():
    return jsonify(_graph.to_dict())


@app.route("/api/aliases/root", methods=["POST"])
def register_root():
    d = request.json or {}
    record = _graph.register_root(_identity(d["identity"]), d.get("annotation", ""))
    return jsonify({"ok": True, "record": record.to_dict()})


@app.route("/api/aliases", methods=["POST"])
def create_alias():
    d = request.json or {}
    record = _graph.create_alias(_identity(d["child"]), _identity(d["parent"]),
                                 d.get("annotation", ""))
    return jsonify({"ok": True, "record": record.to_dict()})


@app.route("/api/aliases/chain", methods=["POST"])
def resolve_chain():
    identity = _identity((request.json or {})["identity"])
    chain = _graph.resolve_chain(identity)
    return jsonify({
        "chain": [_describe(i) for i in chain],
        "annotation": _graph.annotation_for(identity),
    })


@app.route("/api/aliases/clear", methods=["POST"])
def clear_aliases():
    global _graph
    _graph = AliasGraph()
    return jsonify({"ok": True})


# ── Layer 3: Validation sessions ─────────────────────────────────────────────

@app.route("/api/validation", methods=["POST"])
def start_validation():
    """
    Open a confirmation prompt.
    Body JSON:
      expected: list of labels (or one string)
      kind: package | sample | transfer | image (default sample)
      max_attempts: int (default from config: 3, or 5 for image)
      diagram: optional preset name to attach
    """
    d = request.json or {}
    expected = d.get("expected")
    if not expected:
        return jsonify({"error": "expected labels are required"}), 400
    try:
        kind = ValidationKind(d.get("kind", "sample"))
    except ValueError:
        return jsonify({"error": f"Unknown validation kind {d.get('kind')!r}"}), 400
    default_budget = (CONFIG.image_max_attempts if kind == ValidationKind.IMAGE
                      else CONFIG.package_max_attempts)
    diagram = None
    if d.get("diagram"):
        builder = _DIAGRAMS.get(d["diagram"])
        if builder is None:
            return jsonify({"error": f"Unknown diagram '{d['diagram']}'"}), 404
        diagram = to_scene(builder())
    machine = ValidationMachine(
        expected=tuple([expected] if isinstance(expected, str) else expected),
        max_attempts=int(d.get("max_attempts", default_budget)),
        kind=kind,
        diagram=diagram,
    )
    session_id = uuid.uuid4().hex
    _sessions[session_id] = machine
    logger.info("validation_session_opened", session=session_id, kind=kind.value)

    if CONFIG.test_mode:
        machine.respond(machine.expected_answer())
    return jsonify(_session_payload(session_id, machine))


@app.route("/api/validation/<session_id>", methods=["GET"])
def get_validation(session_id: str):
    machine = _sessions.get(session_id)
    if machine is None:
        return jsonify({"error": f"Unknown session '{session_id}'"}), 404
    return jsonify(_session_payload(session_id, machine))


@app.route("/api/validation/<session_id>/respond", methods=["POST"])
def respond_validation(session_id: str):
    machine = _sessions.get(session_id)
    if machine is None:
        return jsonify({"error": f"Unknown session '{session_id}'"}), 404
    if machine.finished:
        return jsonify({"error": f"Session already {machine.state.value}"}), 409
    answer = (request.json or {}).get("answer")
    if answer is None:
        return jsonify({"error": "answer is required"}), 400
    if isinstance(answer, dict):
        return jsonify({"error": "answer must be a label, a list of labels or yes/no"}), 400
    machine.respond(answer)
    return jsonify(_session_payload(session_id, machine))


def _session_payload(session_id: str, machine: ValidationMachine) -> dict:
    payload = {"session_id": session_id, "validation": machine.to_dict()}
    if not machine.finished:
        payload["prompt"] = machine.prompt().to_dict()
    if machine.state == ValidationState.ESCALATED:
        payload["error"] = str(machine.exceeded_error())
    return payload


# ── Layer 4: Diagrams ────────────────────────────────────────────────────────

def _ligation_package():
    kit = RT_PCR_KIT
    diluent = closed_tube(kit.identity_for("K001", "ligation", "diluent A"))
    sets = [
        tube_strip(kit.identities_for("K001", "ligation", "sample tubes", sample),
                   LIGATION_TUBE_COLORS)
        for sample in ("001", "002")
    ]
    return package_contents(diluent, sets)


def _ligation_transfer():
    kit = RT_PCR_KIT
    source = opened_tube(SpecimenIdentity("K001", "A", "2", "001"), "small")
    targets = tube_strip(kit.identities_for("K001", "ligation", "sample tubes", "001"),
                         LIGATION_TUBE_COLORS, opened=True)
    return transfer_to_one(source, targets, 0, "4uL", "(Post-PCR P2 pipette)")


def _detection_strips():
    kit = RT_PCR_KIT
    return strip_panel(kit.identities_for("K001", "detection", "strips", "001"),
                       kit.mutation_colors)


_DIAGRAMS = {
    "ligation_package": _ligation_package,
    "ligation_transfer": _ligation_transfer,
    "detection_strips": _detection_strips,
}


@app.route("/api/diagrams", methods=["GET"])
def list_diagrams():
    return jsonify({"diagrams": list(_DIAGRAMS.keys())})


@app.route("/api/diagrams/<name>", methods=["GET"])
def get_diagram(name: str):
    builder = _DIAGRAMS.get(name)
    if builder is None:
        return jsonify({"error": f"Unknown diagram '{name}'"}), 404
    scene = to_scene(builder())
    if request.args.get("format") == "svg":
        scale = float(request.args.get("scale", 0.75))
        return Response(render_svg(scene, scale), mimetype="image/svg+xml")
    return jsonify({"scene": scene})


if __name__ == "__main__":
    app.run(debug=True, port=5050)
