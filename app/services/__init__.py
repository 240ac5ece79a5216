# Services package: payment gateway, lifecycle, notifications, messaging
