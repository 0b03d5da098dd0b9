# --- storepromo/model/customer.py ---

from ..extensions import db

class Customer(db.Model):
    __tablename__ = "customer"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(180), nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False, default="")
    role = db.Column(db.String(50), nullable=False, default="customer", index=True)  # customer | admin

    membership = db.relationship("Membership", uselist=False, back_populates="customer", lazy="joined")

    def as_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_member": bool(self.membership and self.membership.status == "active"),
        }
