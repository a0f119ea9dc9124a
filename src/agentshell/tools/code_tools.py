"""Heuristic code tools: analysis, generation stubs, refactoring, debugging and test scaffolds."""

import re
from typing import (
    Any,
    Dict,
    List,
)

_FUNCTION_RE = re.compile(r"(?:async\s+)?function\s+(\w+)\s*\([^)]*\)")
_ARROW_RE = re.compile(r"(?:const|let|var)\s+(\w+)\s*=\s*(?:async\s+)?\([^)]*\)\s*=>")
_PY_DEF_RE = re.compile(r"^\s*(?:async\s+)?def\s+(\w+)\s*\(", re.MULTILINE)
_ASSIGN_IN_CONDITION_RE = re.compile(r"if\s*\([^)]*[^=!<>]=(?!=)[^)]*\)")
_COMPLEXITY_PATTERNS = [
    re.compile(p)
    for p in (
        r"\bif\b",
        r"\bfor\b",
        r"\bwhile\b",
        r"\bcase\b",
        r"\bcatch\b",
        r"\bexcept\b",
        "&&",
        r"\|\|",
    )
]
_FILLER_WORDS = re.compile(r"^(?:a|an|the|create|generate|make|write)\s+", re.IGNORECASE)


def extract_functions(code: str) -> List[str]:
    """Names of JavaScript functions / arrow functions and Python defs, in order."""
    names = _FUNCTION_RE.findall(code) + _ARROW_RE.findall(code) + _PY_DEF_RE.findall(code)
    return list(dict.fromkeys(names))


def calculate_complexity(code: str) -> Dict[str, Any]:
    """Rough cyclomatic complexity: one plus every branching token."""
    score = 1 + sum(len(pattern.findall(code)) for pattern in _COMPLEXITY_PATTERNS)
    level = "low" if score < 10 else "medium" if score < 20 else "high"
    return {"score": score, "level": level}


def find_issues(code: str) -> List[Dict[str, str]]:
    issues: List[Dict[str, str]] = []
    if re.search(r"\bvar\s", code):
        issues.append(
            {
                "type": "best-practice",
                "message": "Use const/let instead of var",
                "suggestion": "Replace var with const or let",
            }
        )
    if _ASSIGN_IN_CONDITION_RE.search(code):
        issues.append(
            {
                "type": "error",
                "message": "Assignment in condition",
                "suggestion": "Use === for comparison",
            }
        )
    return issues


def function_name_from(description: str) -> str:
    """camelCase identifier built from the meaningful words of *description*."""
    cleaned = _FILLER_WORDS.sub("", description.lower().strip())
    words = [w for w in re.split(r"[^a-z0-9]+", cleaned) if len(w) > 2]
    if not words:
        return "generatedFunction"
    return words[0] + "".join(w.capitalize() for w in words[1:4])


def analyze_code(code: str, language: str = "javascript") -> Dict[str, Any]:
    """Analyze code for issues, complexity, and quality"""
    issues = find_issues(code)
    return {
        "success": True,
        "language": language,
        "lines": len(code.split("\n")),
        "functions": len(extract_functions(code)),
        "complexity": calculate_complexity(code),
        "issues": issues,
        "severity": "warning" if issues else "clean",
        "suggestions": [i["suggestion"] for i in issues if i.get("suggestion")],
    }


def generate_code(
    description: str, language: str = "javascript", framework: str | None = None
) -> Dict[str, Any]:
    """Generate code from description"""
    name = function_name_from(description)
    if language == "python":
        snake = re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()
        code = (
            f"def {snake}(*args, **kwargs):\n"
            f'    """{description}"""\n'
            f"    raise NotImplementedError({description!r})\n"
        )
    else:
        code = (
            f"/**\n * {description}\n */\n"
            f"function {name}(params) {{\n"
            f"  throw new Error('Not implemented');\n"
            f"}}\n\n"
            f"module.exports = {name};\n"
        )
    return {
        "success": True,
        "description": description,
        "language": language,
        "framework": framework,
        "code": code,
    }


def refactor_code(code: str, refactor_type: str) -> Dict[str, Any]:
    """Refactor code to improve quality"""
    refactored = code
    if refactor_type == "modernize":
        refactored = re.sub(r"\bvar\s+", "const ", code)
    return {
        "success": True,
        "refactor_type": refactor_type,
        "original_lines": len(code.split("\n")),
        "refactored_lines": len(refactored.split("\n")),
        "code": refactored,
    }


def debug_code(code: str, error: str | None = None) -> Dict[str, Any]:
    """Debug code and find issues"""
    issues = find_issues(code)
    return {
        "success": True,
        "error": error,
        "issues": issues,
        "severity": "warning" if issues else "clean",
        "suggestions": [{"suggestion": i["suggestion"]} for i in issues],
    }


def test_code(code: str, framework: str = "jest") -> Dict[str, Any]:
    """Generate tests for code"""
    functions = extract_functions(code)
    if framework == "jest":
        cases = "\n".join(
            f"  it('should test {f}', () => {{\n    expect({f}).toBeDefined();\n  }});"
            for f in functions
        )
        tests = f"describe('Tests', () => {{\n{cases}\n}});\n"
    elif framework == "pytest":
        tests = "\n\n".join(f"def test_{f}():\n    assert callable({f})\n" for f in functions)
    else:
        tests = f"// Tests for {', '.join(functions)}\n"
    return {"success": True, "framework": framework, "functions": functions, "tests": tests}


# pytest would otherwise collect the tool above as a test function
test_code.__test__ = False  # type: ignore[attr-defined]
