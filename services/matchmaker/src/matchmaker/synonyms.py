from __future__ import annotations

from collections.abc import Mapping

SKILL_SYNONYMS: dict[str, tuple[str, ...]] = {
    # javascript
    "javascript": ("js", "ecmascript", "es6", "es2015", "vanilla js"),
    "typescript": ("ts",),
    "react": ("reactjs", "react.js", "react js"),
    "vue": ("vuejs", "vue.js", "vue js"),
    "angular": ("angularjs", "angular.js"),
    "node": ("nodejs", "node.js", "node js"),
    "express": ("expressjs", "express.js"),
    "nextjs": ("next.js", "next js", "next"),
    # python
    "python": ("py", "python3"),
    "django": ("django rest framework", "drf"),
    "flask": ("flask api",),
    "fastapi": ("fast api",),
    # databases
    "mongodb": ("mongo", "mongoose"),
    "postgresql": ("postgres", "psql", "pg"),
    "mysql": ("my sql",),
    "sql": ("structured query language", "database"),
    "redis": ("redis cache",),
    # cloud and devops
    "aws": ("amazon web services", "amazon aws"),
    "azure": ("microsoft azure", "ms azure"),
    "gcp": ("google cloud", "google cloud platform"),
    "docker": ("containerization", "containers"),
    "kubernetes": ("k8s", "kube"),
    "ci/cd": ("cicd", "continuous integration", "continuous deployment"),
    # mobile
    "react native": ("react-native", "rn"),
    "flutter": ("dart flutter",),
    "ios": ("swift", "objective-c", "apple"),
    "android": ("kotlin", "java android"),
    # data science
    "machine learning": ("ml", "deep learning", "ai", "artificial intelligence"),
    "data science": ("data analysis", "data analytics"),
    "tensorflow": ("tf",),
    "pytorch": ("torch",),
    # frontend
    "css": ("cascading style sheets", "stylesheet"),
    "html": ("html5", "hypertext markup language"),
    "sass": ("scss",),
    "tailwind": ("tailwindcss", "tailwind css"),
    "bootstrap": ("bootstrap css",),
    # general
    "api": ("rest api", "restful", "graphql"),
    "git": ("github", "gitlab", "version control"),
    "agile": ("scrum", "kanban"),
    "full stack": ("fullstack", "full-stack"),
    "frontend": ("front-end", "front end", "ui developer"),
    "backend": ("back-end", "back end", "server-side"),
}


def normalize_skill(skill: str) -> str:
    return skill.lower().strip()


def build_equivalence_map(
    table: Mapping[str, tuple[str, ...]],
) -> dict[str, frozenset[str]]:
    classes: dict[str, set[str]] = {}
    for canonical, aliases in table.items():
        key = normalize_skill(canonical)
        members = {key, *(normalize_skill(alias) for alias in aliases)}
        classes.setdefault(key, {key}).update(members)
        for alias in members - {key}:
            classes.setdefault(alias, {alias}).update(members)
    return {term: frozenset(members) for term, members in classes.items()}


SKILL_EQUIVALENCES = build_equivalence_map(SKILL_SYNONYMS)


def expand(skill: str) -> frozenset[str]:
    normalized = normalize_skill(skill)
    return SKILL_EQUIVALENCES.get(normalized, frozenset({normalized}))


def expand_all(skills: list[str]) -> set[str]:
    expanded: set[str] = set()
    for skill in skills:
        if skill.strip():
            expanded.update(expand(skill))
    return expanded
