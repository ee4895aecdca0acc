# inventory/serializers.py
from rest_framework import serializers
from .models import Product, StockMove

class ProductSerializer(serializers.ModelSerializer):
    stock = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = ["id","sku","name","barcode","mrp","purchase_price","discount_pct","tax_rate","stock","is_active","created_at","updated_at"]

    def get_stock(self, obj):
        record = getattr(obj, "stock_record", None)
        return record.stock if record else 0

class StockMoveSerializer(serializers.ModelSerializer):
    class Meta:
        model = StockMove
        fields = ["id","product","qty","reason","ref_type","ref_id","created_by","created_at"]
        read_only_fields = fields
