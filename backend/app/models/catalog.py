"""Catalog records created by the crawler."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text
from datetime import datetime

from app.models.base import Base


class Article(Base):
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(500), nullable=False)
    slug = Column(String(120), nullable=False, unique=True, index=True)
    excerpt = Column(Text, nullable=True)
    content = Column(Text, nullable=False, default="")
    featured_image = Column(String(1000), nullable=True)
    author = Column(String(255), nullable=True)
    publish_date = Column(String(100), nullable=True)  # As scraped, not parsed

    images = Column(JSON, default=list)
    meta_title = Column(String(255), nullable=True)
    meta_description = Column(String(500), nullable=True)

    category_id = Column(Integer, nullable=True)  # Opaque reference supplied by the caller
    status = Column(String(50), default="draft")
    source_url = Column(String(2000), nullable=True, unique=True, index=True)  # Normalized

    created_at = Column(DateTime, default=datetime.utcnow)


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(500), nullable=False)
    slug = Column(String(120), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=True)
    original_price = Column(Integer, nullable=True)
    sku = Column(String(255), nullable=True)

    images = Column(JSON, default=list)
    meta_title = Column(String(255), nullable=True)
    meta_description = Column(String(500), nullable=True)

    category_id = Column(Integer, nullable=True)
    status = Column(String(50), default="draft")
    source_url = Column(String(2000), nullable=True, unique=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
