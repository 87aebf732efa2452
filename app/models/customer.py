from sqlmodel import Field, SQLModel


class CustomerBase(SQLModel):
    name: str
    email: str = Field(index=True)


class Customer(CustomerBase, table=True):
    __tablename__ = "customers"
    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(unique=True, index=True)  # identity provider subject
    stripe_customer_id: str | None = None


class CustomerUpdate(SQLModel):
    name: str | None = None
    email: str | None = None


class CustomerPublic(CustomerBase):
    id: int
    user_id: str
