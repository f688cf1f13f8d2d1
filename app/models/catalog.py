from app.extensions import db
from datetime import datetime

# Minimal reference tables; their CRUD lives outside this service.

class Brand(db.Model):
    __tablename__ = "brand"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    logo_url = db.Column(db.String(255), nullable=True)
    rating = db.Column(db.Numeric(3, 2), default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    discounts = db.relationship("Discount", back_populates="brand", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "logo_url": self.logo_url,
            "rating": float(self.rating or 0),
        }


class Category(db.Model):
    __tablename__ = "category"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(150), unique=True, nullable=False)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "slug": self.slug}


class University(db.Model):
    __tablename__ = "university"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, default=True)

    students = db.relationship("User", back_populates="university")
    domains = db.relationship("UniversityDomain", back_populates="university", cascade="all, delete-orphan")


class UniversityDomain(db.Model):
    __tablename__ = "university_domain"

    id = db.Column(db.Integer, primary_key=True)
    # stored with the leading "@", e.g. "@wiut.uz"
    domain = db.Column(db.String(255), unique=True, nullable=False)
    university_id = db.Column(db.Integer, db.ForeignKey("university.id"), nullable=False)
    auto_verify = db.Column(db.Boolean, default=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    university = db.relationship("University", back_populates="domains")

    def to_dict(self):
        return {
            "id": self.id,
            "domain": self.domain,
            "university_id": self.university_id,
            "university_name": self.university.name if self.university else None,
            "auto_verify": self.auto_verify,
            "is_active": self.is_active,
        }
