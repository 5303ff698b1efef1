"""Domain layer: value objects, entities, pricing and QR security"""
