"""Services module"""
