from pydantic import Field

from sarathi.models.base import CamelModel


class PatientProfile(CamelModel):
    """단말에 등록된 환자 신원 정보"""

    patient_id: str = Field(..., description="이름/나이/지역에서 파생된 환자 식별자")
    name: str = Field(default="", description="환자 이름")
    age: int = Field(default=0, ge=0, description="나이")
    location: str = Field(default="", description="마을/지역")
    state: str = Field(default="", description="주")
    district: str = Field(default="", description="군/구")
    street_village: str = Field(default="", description="거리 또는 마을")
    house_number: str = Field(default="", description="번지")
    phone_number: str = Field(default="", description="연락처")
    language: str = Field(default="English", description="선호 언어")

    def is_complete(self) -> bool:
        """백엔드 동기화에 필요한 이름과 나이가 있는지 확인"""
        return bool(self.name.strip()) and self.age > 0


class DoctorProfile(CamelModel):
    """의사 역할 프로필"""

    name: str
    specialization: str = "General Medicine"
    clinic_id: str = "UNKNOWN_CLINIC"


class PharmacyProfile(CamelModel):
    """약국 역할 프로필"""

    name: str
    license: str = ""
    district: str = ""
