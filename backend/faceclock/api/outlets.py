from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from faceclock.core.config import settings
from faceclock.core.database import get_db
from faceclock.models.attendance import Attendance
from faceclock.models.outlet import Outlet as OutletModel
from faceclock.schemas.outlet import Outlet, OutletCreate, OutletUpdate

router = APIRouter(prefix="/api/outlets", tags=["outlets"])


@router.get("", response_model=List[Outlet])
def list_outlets(db: Session = Depends(get_db)):
    """All outlets, in the order the geofence check walks them."""
    return db.query(OutletModel).order_by(OutletModel.id).all()


@router.post("", response_model=Outlet, status_code=status.HTTP_201_CREATED)
def create_outlet(payload: OutletCreate, db: Session = Depends(get_db)):
    outlet = OutletModel(
        name=payload.name,
        address=payload.address,
        latitude=payload.latitude,
        longitude=payload.longitude,
        radius=payload.radius if payload.radius is not None else settings.DEFAULT_OUTLET_RADIUS_METERS,
        is_active=payload.is_active,
    )
    db.add(outlet)
    db.commit()
    db.refresh(outlet)
    return outlet


@router.put("/{outlet_id}", response_model=Outlet)
def update_outlet(outlet_id: int, payload: OutletUpdate, db: Session = Depends(get_db)):
    outlet = db.query(OutletModel).filter(OutletModel.id == outlet_id).first()
    if not outlet:
        raise HTTPException(status_code=404, detail="Outlet not found")

    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None and field != "address":
            continue
        setattr(outlet, field, value)

    db.commit()
    db.refresh(outlet)
    return outlet


@router.delete("/{outlet_id}")
def delete_outlet(outlet_id: int, db: Session = Depends(get_db)):
    """Delete an outlet. Attendance records keep their coordinates but lose the link."""
    outlet = db.query(OutletModel).filter(OutletModel.id == outlet_id).first()
    if not outlet:
        raise HTTPException(status_code=404, detail="Outlet not found")

    db.query(Attendance).filter(Attendance.outlet_id == outlet_id).update(
        {Attendance.outlet_id: None}, synchronize_session=False
    )
    db.delete(outlet)
    db.commit()
    return {"success": True, "message": "Outlet deleted successfully"}
