"""Employee enrollment API.

Setting or changing a photo recomputes the cached face descriptor; a photo
with no face (or removing the photo) clears it.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from faceclock.core.database import get_db
from faceclock.core.dependencies import get_extractor
from faceclock.models.attendance import Attendance
from faceclock.models.employee import Employee as EmployeeModel
from faceclock.schemas.attendance import Attendance as AttendanceOut
from faceclock.schemas.employee import Employee, EmployeeCreate, EmployeeDetail, EmployeeUpdate
from faceclock.services.descriptor_store import DescriptorStore
from faceclock.services.extractor import ExtractionError, ExtractionTimeout, Extractor, InvalidImage

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/employees", tags=["employees"])


@router.get("", response_model=List[Employee])
def list_employees(db: Session = Depends(get_db)):
    return db.query(EmployeeModel).order_by(EmployeeModel.created_at.desc(), EmployeeModel.id.desc()).all()


@router.get("/{employee_id}", response_model=EmployeeDetail)
def get_employee(employee_id: int, db: Session = Depends(get_db)):
    """Employee with their last 10 attendance records."""
    employee = _get_or_404(db, employee_id)
    recent = (
        db.query(Attendance)
        .filter(Attendance.employee_id == employee_id)
        .order_by(Attendance.created_at.desc(), Attendance.id.desc())
        .limit(10)
        .all()
    )
    detail = EmployeeDetail.model_validate(employee)
    detail.recent_attendances = [AttendanceOut.model_validate(a) for a in recent]
    return detail


@router.post("", response_model=Employee, status_code=status.HTTP_201_CREATED)
def create_employee(
    payload: EmployeeCreate,
    db: Session = Depends(get_db),
    extractor: Extractor = Depends(get_extractor),
):
    if db.query(EmployeeModel).filter(EmployeeModel.user_code == payload.user_code).first():
        raise HTTPException(status_code=409, detail="User code already exists")

    employee = EmployeeModel(
        user_code=payload.user_code,
        name=payload.name,
        department=payload.department,
        photo=payload.photo or None,
    )
    _refresh_descriptor(db, employee, extractor)

    db.add(employee)
    db.commit()
    db.refresh(employee)
    logger.info(f"Employee {employee.user_code} enrolled (descriptor: {employee.has_face_descriptor})")
    return employee


@router.put("/{employee_id}", response_model=Employee)
def update_employee(
    employee_id: int,
    payload: EmployeeUpdate,
    db: Session = Depends(get_db),
    extractor: Extractor = Depends(get_extractor),
):
    employee = _get_or_404(db, employee_id)
    data = payload.model_dump(exclude_unset=True)

    new_code = data.get("user_code")
    if new_code and new_code != employee.user_code:
        conflict = db.query(EmployeeModel).filter(EmployeeModel.user_code == new_code).first()
        if conflict:
            raise HTTPException(status_code=409, detail="User code already exists")

    for field in ("user_code", "name", "department"):
        if field in data:
            setattr(employee, field, data[field])

    if "photo" in data:
        new_photo = data["photo"] or None
        if new_photo != employee.photo:
            employee.photo = new_photo
            _refresh_descriptor(db, employee, extractor)

    db.commit()
    db.refresh(employee)
    return employee


@router.delete("/{employee_id}")
def delete_employee(employee_id: int, db: Session = Depends(get_db)):
    """Delete an employee and, first, all their attendance records."""
    employee = _get_or_404(db, employee_id)

    db.query(Attendance).filter(Attendance.employee_id == employee_id).delete(synchronize_session=False)
    db.delete(employee)
    db.commit()

    logger.info(f"Employee {employee_id} deleted with attendance history")
    return {"success": True, "message": "Employee deleted successfully"}


# ── Internal Helpers ─────────────────────────────────────────────────

def _get_or_404(db: Session, employee_id: int) -> EmployeeModel:
    employee = db.query(EmployeeModel).filter(EmployeeModel.id == employee_id).first()
    if not employee:
        raise HTTPException(status_code=404, detail="Employee not found")
    return employee


def _refresh_descriptor(db: Session, employee: EmployeeModel, extractor: Extractor) -> None:
    try:
        DescriptorStore(db).refresh_descriptor(employee, extractor)
    except (ValueError, InvalidImage) as e:
        raise HTTPException(status_code=400, detail=f"Invalid photo: {e}")
    except ExtractionTimeout as e:
        logger.error(f"Descriptor computation timed out for {employee.user_code}: {e}")
        raise HTTPException(status_code=504, detail="Face descriptor computation timed out")
    except ExtractionError as e:
        logger.error(f"Descriptor computation failed for {employee.user_code}: {e}")
        raise HTTPException(status_code=502, detail="Face descriptor could not be computed")
