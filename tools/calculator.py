"""
Calculator and computation tools.

Expressions are evaluated by walking the parsed AST; only numeric literals,
arithmetic operators and a fixed set of math functions are allowed.
"""

import ast
import math
import operator
import statistics
from typing import Any, Callable, Dict, List, Literal

from pydantic import BaseModel, Field

from core.tools import Tool

_BIN_OPS: Dict[type, Callable] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: Dict[type, Callable] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS: Dict[str, Callable] = {
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
    "sqrt": math.sqrt,
    "log": math.log,
    "log10": math.log10,
    "exp": math.exp,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "floor": math.floor,
    "ceil": math.ceil,
}

_CONSTANTS = {"pi": math.pi, "e": math.e}

MAX_EXPONENT = 1000


def safe_eval(expression: str) -> float:
    """Evaluate an arithmetic expression without executing code."""
    tree = ast.parse(expression, mode="eval")
    return _eval_node(tree.body)


def _eval_node(node: ast.AST) -> Any:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        left, right = _eval_node(node.left), _eval_node(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ValueError("exponent too large")
        return _BIN_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and node.func.id in _FUNCTIONS:
        if node.keywords:
            raise ValueError("keyword arguments are not supported")
        return _FUNCTIONS[node.func.id](*[_eval_node(arg) for arg in node.args])
    raise ValueError(f"Unsupported expression element: {ast.dump(node)[:40]}")


class CalculatorParams(BaseModel):
    expression: str = Field(..., min_length=1, description='Arithmetic expression, e.g. "2 + 2 * 3" or "sqrt(144)"')
    precision: int = Field(2, ge=0, le=10, description="Decimal places for result")


class FinancialCalculatorParams(BaseModel):
    metric: Literal["roi", "cagr", "pe_ratio", "price_to_sales", "profit_margin", "growth_rate"] = Field(
        ..., description="Financial metric to calculate"
    )
    values: Dict[str, float] = Field(..., description="Input values as key-value pairs")


class DataAnalysisParams(BaseModel):
    values: List[float] = Field(..., min_length=1, description="Numeric series to analyze")


_FORMULAS = {
    "roi": (("initial", "final"), lambda v: (v["final"] - v["initial"]) / v["initial"] * 100, "((Final - Initial) / Initial) x 100"),
    "cagr": (("initial", "final", "years"), lambda v: ((v["final"] / v["initial"]) ** (1 / v["years"]) - 1) * 100, "((Final / Initial)^(1/Years) - 1) x 100"),
    "pe_ratio": (("price", "earnings_per_share"), lambda v: v["price"] / v["earnings_per_share"], "Price / EPS"),
    "price_to_sales": (("market_cap", "revenue"), lambda v: v["market_cap"] / v["revenue"], "Market Cap / Revenue"),
    "profit_margin": (("net_income", "revenue"), lambda v: v["net_income"] / v["revenue"] * 100, "(Net Income / Revenue) x 100"),
    "growth_rate": (("previous", "current"), lambda v: (v["current"] - v["previous"]) / v["previous"] * 100, "((Current - Previous) / Previous) x 100"),
}


def calculate(expression: str, precision: int = 2) -> Dict[str, Any]:
    result = safe_eval(expression)
    rounded = round(result, precision)
    return {
        "success": True,
        "result": rounded,
        "expression": expression,
        "formatted": f"{expression} = {rounded}",
    }


def financial_calculate(metric: str, values: Dict[str, float]) -> Dict[str, Any]:
    required, formula_fn, formula = _FORMULAS[metric]
    missing = [name for name in required if name not in values]
    if missing:
        raise ValueError(f"{metric} requires values: {', '.join(missing)}")
    try:
        result = formula_fn(values)
    except ZeroDivisionError:
        raise ValueError(f"{metric} is undefined for a zero denominator")
    return {
        "success": True,
        "metric": metric,
        "result": round(result, 4),
        "formula": formula,
        "inputs": values,
    }


def analyze_series(values: List[float]) -> Dict[str, Any]:
    trend = "flat"
    if len(values) > 1:
        if values[-1] > values[0]:
            trend = "increasing"
        elif values[-1] < values[0]:
            trend = "decreasing"
    return {
        "success": True,
        "count": len(values),
        "mean": statistics.fmean(values),
        "median": statistics.median(values),
        "min": min(values),
        "max": max(values),
        "stdev": statistics.stdev(values) if len(values) > 1 else 0.0,
        "trend": trend,
    }


def calculator_tools() -> List[Tool]:
    return [
        Tool(
            name="calculator",
            description="Perform mathematical calculations. Supports arithmetic and basic functions (sqrt, log, sin, ...). Safe evaluation with no code execution.",
            func=calculate,
            schema=CalculatorParams,
            category="compute",
        ),
        Tool(
            name="financial_calculator",
            description="Calculate financial metrics: ROI, CAGR, P/E ratio, price-to-sales, profit margin, growth rate.",
            func=financial_calculate,
            schema=FinancialCalculatorParams,
            category="compute",
        ),
        Tool(
            name="data_analysis",
            description="Summarize a numeric series: count, mean, median, min, max, standard deviation and trend.",
            func=analyze_series,
            schema=DataAnalysisParams,
            category="compute",
        ),
    ]
