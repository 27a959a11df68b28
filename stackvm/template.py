"""CloudFormation template for the VM stack."""

import json

OUTPUT_INSTANCE_ID = "InstanceId"
OUTPUT_PUBLIC_IP = "PublicIP"
OUTPUT_SECURITY_GROUP_ID = "SecurityGroupId"

INGRESS_PORTS = [22, 80, 443]


def build_template() -> dict:
    """Return the stack template: one security group and one instance.

    Parameterized by ImageId, InstanceType, VpcId, SubnetId and UserData
    (base64 startup script, empty for none).
    """
    return {
        "AWSTemplateFormatVersion": "2010-09-09",
        "Description": "stackvm EC2 instance with SSH/HTTP/HTTPS access",
        "Parameters": {
            "ImageId": {"Type": "String"},
            "InstanceType": {"Type": "String", "Default": "t3.micro"},
            "VpcId": {"Type": "String"},
            "SubnetId": {"Type": "String"},
            "UserData": {"Type": "String", "Default": ""},
        },
        "Conditions": {
            "HasUserData": {"Fn::Not": [{"Fn::Equals": [{"Ref": "UserData"}, ""]}]},
        },
        "Resources": {
            "SecurityGroup": {
                "Type": "AWS::EC2::SecurityGroup",
                "Properties": {
                    "GroupDescription": "Allow SSH/HTTP/HTTPS",
                    "VpcId": {"Ref": "VpcId"},
                    "SecurityGroupIngress": [
                        {
                            "IpProtocol": "tcp",
                            "FromPort": port,
                            "ToPort": port,
                            "CidrIp": "0.0.0.0/0",
                        }
                        for port in INGRESS_PORTS
                    ],
                },
            },
            "Instance": {
                "Type": "AWS::EC2::Instance",
                "Properties": {
                    "InstanceType": {"Ref": "InstanceType"},
                    "ImageId": {"Ref": "ImageId"},
                    "NetworkInterfaces": [
                        {
                            "DeviceIndex": "0",
                            "SubnetId": {"Ref": "SubnetId"},
                            "AssociatePublicIpAddress": True,
                            "GroupSet": [
                                {"Fn::GetAtt": ["SecurityGroup", "GroupId"]}
                            ],
                        }
                    ],
                    "UserData": {
                        "Fn::If": [
                            "HasUserData",
                            {"Ref": "UserData"},
                            {"Ref": "AWS::NoValue"},
                        ]
                    },
                },
            },
        },
        "Outputs": {
            OUTPUT_INSTANCE_ID: {"Value": {"Ref": "Instance"}},
            OUTPUT_PUBLIC_IP: {"Value": {"Fn::GetAtt": ["Instance", "PublicIp"]}},
            OUTPUT_SECURITY_GROUP_ID: {"Value": {"Ref": "SecurityGroup"}},
        },
    }


def render_template() -> str:
    return json.dumps(build_template(), indent=2)


def build_parameters(
    image_id: str,
    instance_type: str,
    network_id: str,
    subnet_id: str,
    user_data: str,
) -> dict[str, str]:
    return {
        "ImageId": image_id,
        "InstanceType": instance_type,
        "VpcId": network_id,
        "SubnetId": subnet_id,
        "UserData": user_data,
    }
