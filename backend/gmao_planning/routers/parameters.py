"""
Parameters router - interval/level rules and per-category operation rules.
Any change makes the generated plans stale, so they are cleared.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from gmao_planning.database import get_db
from gmao_planning.models import Equipment, IntervalRule, CategoryRule
from gmao_planning.schemas import (
    IntervalRuleResponse,
    IntervalRuleUpdate,
    CategoryRuleUpdate,
    CategoryRuleResponse
)
from gmao_planning.services.normalizer import resolve_operation
from gmao_planning.services.planning_service import PlanningService

router = APIRouter()
logger = logging.getLogger(__name__)


# ==================== INTERVAL RULES ====================

@router.get("/interval-rules", response_model=List[IntervalRuleResponse])
def list_interval_rules(db: Session = Depends(get_db)):
    """
    Interval/level rule table, in table order.
    """
    return db.query(IntervalRule).order_by(IntervalRule.id).all()


@router.patch("/interval-rules/{rule_id}", response_model=IntervalRuleResponse)
def update_interval_rule(
    rule_id: int,
    rule_update: IntervalRuleUpdate,
    db: Session = Depends(get_db)
):
    """
    Update the markers or level flags of one rule row.

    Interval markers accept '*', '**' or '' (inactive). Every generated
    plan is cleared.
    """
    rule = db.query(IntervalRule).filter(IntervalRule.id == rule_id).first()
    if not rule:
        raise HTTPException(status_code=404, detail="Interval rule not found")

    update_data = rule_update.model_dump(exclude_unset=True)
    for field, field_value in update_data.items():
        if field.startswith("interval_") and field_value == "":
            field_value = None
        setattr(rule, field, field_value)

    # clear_plan commits the rule change together with the plan reset
    deleted = PlanningService.clear_plan(db)
    db.refresh(rule)

    logger.info(f"Interval rule {rule_id} ('{rule.operation}') updated, {deleted} planned rows cleared")
    return rule


# ==================== CATEGORY RULES ====================

@router.get("/category-rules", response_model=List[CategoryRuleResponse])
def list_category_rules(
    category: Optional[str] = Query(None, description="Restrict to one category"),
    db: Session = Depends(get_db)
):
    """
    Per-category operation rules. A missing (category, operation) pair
    means the operation is active for the category.
    """
    query = db.query(CategoryRule)
    if category:
        query = query.filter(CategoryRule.category == category)
    return query.order_by(CategoryRule.category, CategoryRule.id).all()


@router.put("/category-rules", response_model=CategoryRuleResponse)
def set_category_rule(rule_update: CategoryRuleUpdate, db: Session = Depends(get_db)):
    """
    Create or update the rule of one (category, operation) pair.

    The operation may be given as a catalog code or its label. Every
    generated plan is cleared.
    """
    operation = resolve_operation(rule_update.operation)
    if operation is None:
        raise HTTPException(status_code=400, detail=f"Unknown operation '{rule_update.operation}'")

    rule = db.query(CategoryRule).filter(
        CategoryRule.category == rule_update.category,
        CategoryRule.operation == operation
    ).first()

    if rule is None:
        rule = CategoryRule(category=rule_update.category, operation=operation)
        db.add(rule)
    rule.is_active = rule_update.is_active

    deleted = PlanningService.clear_plan(db)
    db.refresh(rule)

    logger.info(
        f"Category rule '{rule.category}' / '{operation}' set to "
        f"{'active' if rule.is_active else 'inactive'}, {deleted} planned rows cleared"
    )
    return rule


@router.get("/categories", response_model=List[str])
def list_categories(db: Session = Depends(get_db)):
    """
    Every known equipment category (roster and category rules).
    """
    categories = {c for (c,) in db.query(Equipment.category).distinct().all() if c}
    categories |= {c for (c,) in db.query(CategoryRule.category).distinct().all() if c}
    return sorted(categories)
