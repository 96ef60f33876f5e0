"""Static build profiles, one per supported framework."""
from __future__ import annotations
from dataclasses import fields, replace
from typing import Any, Dict, Mapping, Optional

from .errors import UnsupportedFramework
from .models import FrameworkProfile

TEMPLATE_DIR = "/workspace/template-app"
COMPLETION_MARKER = "COMPILATION_COMPLETE"

FRAMEWORKS: Dict[str, FrameworkProfile] = {
    "angular": FrameworkProfile(
        name="angular",
        image="angular-compiler:latest",
        file_path="src/app/app.ts",
        dist_path=f"{TEMPLATE_DIR}/dist/template-app",
        cache_host_path="/tmp/angular-cache",
        cache_cont_path=f"{TEMPLATE_DIR}/.angular/cache",
        build_cmd=(
            "ng build --configuration production --output-hashing none "
            "--optimization true --source-map true --progress false"
        ),
        cleanup_globs=("src/app/app.ts", "src/app/app.component.html", "src/app/app.component.css"),
    ),
    "react": FrameworkProfile(
        name="react",
        image="react-compiler:latest",
        file_path="src/App.tsx",
        dist_path=f"{TEMPLATE_DIR}/dist",
        cache_host_path="/tmp/react-cache",
        cache_cont_path=f"{TEMPLATE_DIR}/node_modules/.vite",  # vite cache
        build_cmd="npm run build",
        cleanup_globs=("src/*.css", "src/App.tsx"),
    ),
    "vue": FrameworkProfile(
        name="vue",
        image="vue-compiler:latest",
        file_path="src/App.vue",
        dist_path=f"{TEMPLATE_DIR}/dist",
        cache_host_path="/tmp/vue-cache",
        cache_cont_path=f"{TEMPLATE_DIR}/node_modules/.vite",
        build_cmd="npx vite build",
        cleanup_globs=("src/components/*.vue",),
    ),
}

_PROFILE_FIELDS = {f.name for f in fields(FrameworkProfile)} - {"name"}


def build_registry(overrides: Optional[Mapping[str, Mapping[str, Any]]] = None) -> Dict[str, FrameworkProfile]:
    """Apply per-key field overrides from config. Cannot add new frameworks."""
    registry = dict(FRAMEWORKS)
    for key, patch in (overrides or {}).items():
        base = registry.get(str(key).lower())
        if base is None or not isinstance(patch, Mapping):
            continue
        changes = {k: v for k, v in patch.items() if k in _PROFILE_FIELDS}
        if "cleanup_globs" in changes:
            changes["cleanup_globs"] = tuple(changes["cleanup_globs"])
        registry[base.name] = replace(base, **changes)
    return registry


def get_profile(framework: Any, registry: Optional[Mapping[str, FrameworkProfile]] = None) -> FrameworkProfile:
    registry = FRAMEWORKS if registry is None else registry
    if not isinstance(framework, str):
        raise UnsupportedFramework(framework)
    profile = registry.get(framework.strip().lower())
    if profile is None:
        raise UnsupportedFramework(framework)
    return profile
