import json
from pathlib import Path
from typing import Any, Dict, List

import yaml
from django.core.management.base import BaseCommand, CommandError

from apps.leadflows import repository
from apps.leadflows.exceptions import LeadFlowError, FlowValidationError


def prepare_document(doc: Dict[str, Any]) -> Dict[str, Any]:
    """
    Complète un document saisi à la main: ids manquants (step-N / field_name),
    step_order renuméroté 0..N-1 (tri stable), field_order consommé pour l'ordre.
    """
    doc = dict(doc)
    steps = sorted(doc.get("steps") or [], key=lambda s: s.get("step_order", 0))
    prepared: List[Dict[str, Any]] = []
    for idx, raw in enumerate(steps):
        step = dict(raw)
        step.setdefault("id", f"step-{idx + 1}")
        step["step_order"] = idx
        fields = sorted(step.get("fields") or [], key=lambda f: f.get("field_order", 0))
        step["fields"] = []
        for raw_field in fields:
            fld = {k: v for k, v in raw_field.items() if k != "field_order"}
            fld.setdefault("id", fld.get("field_name"))
            step["fields"].append(fld)
        prepared.append(step)
    doc["steps"] = prepared
    return doc


def load_documents(path: Path) -> List[Dict[str, Any]]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if isinstance(data, dict) and "flows" in data:
        data = data["flows"]
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
        raise CommandError(f"{path}: attendu un flow ou une liste 'flows'")
    return data


class Command(BaseCommand):
    help = "Importe des flows (YAML/JSON) en brouillon, et les publie avec --publish."

    def add_arguments(self, parser):
        parser.add_argument("path", help="Fichier .yaml/.yml/.json")
        parser.add_argument("--flow", dest="flow_id", help="Ajoute une version au flow existant (un seul document)")
        parser.add_argument("--publish", action="store_true", help="Publie chaque brouillon importé")

    def handle(self, *args, **options):
        path = Path(options["path"])
        if not path.exists():
            raise CommandError(f"Fichier introuvable: {path}")
        try:
            documents = load_documents(path)
        except (ValueError, yaml.YAMLError) as exc:
            raise CommandError(f"Erreur parsing {path}: {exc}") from exc

        flow_id = options.get("flow_id")
        if flow_id and len(documents) != 1:
            raise CommandError("--flow n'accepte qu'un seul document")

        failures = 0
        for doc in documents:
            label = doc.get("slug") or doc.get("name") or "?"
            try:
                saved = repository.save_draft(flow_id, prepare_document(doc))
                line = f"{label}: flow={saved.flow_id} v{saved.version}"
                if options["publish"]:
                    repository.publish(saved.flow_id)
                    line += " (publié)"
            except FlowValidationError as exc:
                failures += 1
                self.stderr.write(self.style.ERROR(f"{label}: payload invalide"))
                for err in exc.errors:
                    self.stderr.write(f"  - {err.path}: {err.message}")
                continue
            except LeadFlowError as exc:
                failures += 1
                self.stderr.write(self.style.ERROR(f"{label}: {exc}"))
                continue
            self.stdout.write(self.style.SUCCESS(line))

        if failures:
            raise CommandError(f"{failures} flow(s) non importé(s)")
