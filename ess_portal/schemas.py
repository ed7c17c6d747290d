from datetime import date
from typing import Any, Literal, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class LoginRequest(_CamelModel):
    employee_id: str = Field(default="", alias="employeeId", validate_default=True)
    password: str = Field(default="", validate_default=True)

    @field_validator("employee_id")
    @classmethod
    def _employee_id_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Employee ID is required")
        return value

    @field_validator("password")
    @classmethod
    def _password_required(cls, value: str) -> str:
        if not value:
            raise ValueError("Password is required")
        return value


def _first_present(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


class User(_CamelModel):
    id: str
    employee_id: str = Field(alias="employeeId")
    name: str
    email: str = ""
    phone: str | None = None
    position: str | None = None
    department: str | None = None

    @classmethod
    def from_upstream(cls, payload: Mapping[str, Any], *, employee_id: str) -> "User":
        """Build a sanitized user from whichever login payload variant the remote sent.

        Some remote revisions nest the user under ``user`` or ``data``, others
        return flat employee columns (``emp_no``, ``full_name``, ``designation``).
        Credentials are never copied.
        """
        source: Mapping[str, Any] = payload
        # {"data": {"user": {...}}} is two levels deep.
        for _ in range(2):
            for key in ("user", "employee", "data"):
                nested = source.get(key)
                if isinstance(nested, Mapping):
                    source = nested
                    break
            else:
                break

        resolved_employee_id = str(
            _first_present(source, "employeeId", "employee_id", "emp_no", "empno") or employee_id
        )
        resolved_id = _first_present(source, "id", "user_id", "userId")
        name = _first_present(source, "name", "full_name", "fullName", "emp_name")
        return cls(
            id=str(resolved_id if resolved_id is not None else resolved_employee_id),
            employee_id=resolved_employee_id,
            name=str(name or resolved_employee_id),
            email=str(_first_present(source, "email", "email_address") or ""),
            phone=_optional_str(_first_present(source, "phone", "mobile")),
            position=_optional_str(_first_present(source, "position", "designation")),
            department=_optional_str(_first_present(source, "department", "department_name")),
        )


class LoginResponse(_CamelModel):
    user: User
    token: str


class MessageResponse(BaseModel):
    message: str


class AttendanceRecord(_CamelModel):
    date: str
    check_in: str | None = Field(default=None, alias="checkIn")
    check_out: str | None = Field(default=None, alias="checkOut")
    status: str = "absent"
    hours_worked: float | None = Field(default=None, alias="hoursWorked")


def is_active_checkin(record: Any) -> bool:
    if not isinstance(record, Mapping):
        return False
    check_in = _first_present(record, "checkIn", "check_in")
    check_out = _first_present(record, "checkOut", "check_out")
    return check_in is not None and check_out is None


class LeaveRequestCreate(_CamelModel):
    type: str = Field(min_length=1, validation_alias=AliasChoices("type", "leaveType"))
    start_date: date = Field(alias="startDate", validation_alias=AliasChoices("startDate", "fromDate"))
    end_date: date = Field(alias="endDate", validation_alias=AliasChoices("endDate", "toDate"))
    reason: str = Field(min_length=1)

    @model_validator(mode="after")
    def _validate_range(self) -> "LeaveRequestCreate":
        if self.end_date < self.start_date:
            raise ValueError("End date must be on or after start date")
        return self


class LeaveRequestRead(_CamelModel):
    type: str
    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")
    reason: str | None = None
    status: Literal["pending", "approved", "rejected"] = "pending"


class PayrollRecord(_CamelModel):
    month: str
    year: int
    basic_salary: float = Field(alias="basicSalary")
    allowances: float = 0
    deductions: float = 0
    net_salary: float = Field(alias="netSalary")
    status: str | None = None


class DocumentRead(_CamelModel):
    name: str
    type: str | None = None
    size: str | None = None
    upload_date: str | None = Field(default=None, alias="uploadDate")
    category: str | None = None


class DashboardStats(_CamelModel):
    today_status: str = Field(alias="todayStatus")
    leave_balance: str = Field(alias="leaveBalance")
    monthly_attendance: str = Field(alias="monthlyAttendance")
    is_checked_in: bool = Field(alias="isCheckedIn")

    @classmethod
    def fallback(cls, working_days_per_month: int = 22) -> "DashboardStats":
        return cls(
            today_status="Not Checked In",
            leave_balance="0 Days",
            monthly_attendance=f"0/{working_days_per_month} Days",
            is_checked_in=False,
        )


class HealthResponse(BaseModel):
    status: str
    upstream_base_url: str
    active_sessions: int
